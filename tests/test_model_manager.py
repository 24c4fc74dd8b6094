# tests/test_model_manager.py
import pytest
from pathlib import Path
from unittest.mock import patch

from speechstream.ModelManager import ModelManager, SILERO_FILE
from speechstream.SpeechConfig import SpeechConfig


@pytest.fixture
def config(tmp_path):
    return SpeechConfig(
        model_path=str(tmp_path / "parakeet"),
        vad_model_path=str(tmp_path / "silero_vad" / "silero_vad.onnx"),
    )


def create_decoder(config):
    model_dir = Path(config.model_path)
    model_dir.mkdir(parents=True, exist_ok=True)
    (model_dir / "config.json").write_text("{}")


def create_vad(config):
    path = Path(config.vad_model_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"onnx")


def test_all_missing(config):
    assert ModelManager.get_missing_models(config) == ['decoder', 'vad']


def test_none_missing(config):
    create_decoder(config)
    create_vad(config)

    assert ModelManager.get_missing_models(config) == []


def test_empty_file_is_invalid(config):
    create_vad(config)
    Path(config.vad_model_path).write_bytes(b"")

    assert not ModelManager.validate_model('vad', config)


def test_unknown_model_name_invalid(config):
    assert not ModelManager.validate_model('punctuation', config)


@patch('speechstream.ModelManager.hf_hub_download')
@patch('speechstream.ModelManager.snapshot_download')
def test_download_only_missing(mock_snapshot, mock_hf, config):
    create_vad(config)

    downloaded = ModelManager.download_models(config)

    assert downloaded == ['decoder']
    assert mock_snapshot.call_args.kwargs['repo_id'] == "istupakov/parakeet-tdt-0.6b-v3-onnx"
    assert mock_snapshot.call_args.kwargs['local_dir'] == config.model_path
    mock_hf.assert_not_called()


@patch('speechstream.ModelManager.hf_hub_download')
@patch('speechstream.ModelManager.snapshot_download')
def test_silero_moved_to_configured_path(mock_snapshot, mock_hf, config):
    create_decoder(config)
    silero_dir = Path(config.vad_model_path).parent

    def fake_download(repo_id, filename, local_dir):
        target = Path(local_dir) / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"silero")
        return str(target)

    mock_hf.side_effect = fake_download

    ModelManager.download_models(config)

    assert Path(config.vad_model_path).read_bytes() == b"silero"
    assert not (silero_dir / SILERO_FILE).exists()
    mock_snapshot.assert_not_called()


def test_unknown_decoder_repo(config):
    config.model_name = "whisper-base"

    with pytest.raises(KeyError):
        ModelManager.download_models(config)
