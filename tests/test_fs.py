from pathlib import Path

from loudpass.utils import fs


def test_output_filename_with_prefix_and_suffix():
    assert fs.output_filename("My Song.wav", "norm", "v2") == "norm_My Song_v2.mp3"


def test_output_filename_without_prefix_or_suffix():
    assert fs.output_filename("My Song.wav") == "My Song.mp3"
    assert fs.output_filename("My Song.wav", "", "") == "My Song.mp3"


def test_output_filename_forces_mp3_and_strips_last_extension_only():
    assert fs.output_filename("take.1.flac", suffix="loud") == "take.1_loud.mp3"
    assert fs.output_filename("voice.mp3") == "voice.mp3"
    assert fs.output_filename("noext", prefix="a") == "a_noext.mp3"


def test_output_filename_drops_client_directories():
    assert fs.output_filename("C:\\Users\\me\\clip.wav") == "clip.mp3"
    assert fs.output_filename("/home/me/clip.wav") == "clip.mp3"


def test_output_filename_strips_extension_from_dot_file_names():
    assert fs.output_filename(".wav") == ".mp3"
    assert fs.output_filename(".wav", prefix="n") == "n_.mp3"
    assert fs.output_filename(".hidden.flac") == ".hidden.mp3"
    assert fs.source_stem("trailing.") == "trailing."


def test_truncate_middle_ascii():
    name = "a_very_long_audio_file_name_for_testing.mp3"
    short = fs.truncate_middle(name)
    assert short == name[:13] + "..." + name[-13:]
    assert len(short) == 29


def test_truncate_middle_non_ascii_budget():
    name = "とても長いファイル名のテスト音源ファイルです.mp3"
    short = fs.truncate_middle(name)
    assert short == name[:7] + "..." + name[-7:]


def test_truncate_middle_short_names_unchanged():
    assert fs.truncate_middle("clip.mp3") == "clip.mp3"
    assert fs.truncate_middle("") == ""
    assert fs.truncate_middle("音源.mp3") == "音源.mp3"


def test_allowed_file():
    assert fs.allowed_file("test.WAV")
    assert fs.allowed_file("voice.mp3")
    assert not fs.allowed_file("movie.mkv")
    assert fs.allowed_file(".wav")
    assert not fs.allowed_file("noext")


def test_relative_work_dir_resolves_against_project_root(tmp_path, monkeypatch):
    monkeypatch.setattr(fs, "BASE_DIR", tmp_path)
    work = fs.resolve_work_dir("relwork")
    assert work == tmp_path / "relwork"
    assert work.is_dir()


def test_absolute_work_dir(tmp_path):
    work = fs.resolve_work_dir(str(tmp_path / "abs"))
    assert work == Path(tmp_path / "abs")
    assert work.is_dir()


def test_sha256_bytes():
    assert fs.sha256_bytes(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
