"""
ModelManager checks and downloads the decoder and VAD model artifacts.
"""
import logging
import shutil
from pathlib import Path
from typing import List

from huggingface_hub import snapshot_download, hf_hub_download

from speechstream.SpeechConfig import SpeechConfig

# modelName -> HuggingFace repository with the onnx-asr export
DECODER_REPOS = {
    "nemo-parakeet-tdt-0.6b-v3": "istupakov/parakeet-tdt-0.6b-v3-onnx",
    "nemo-parakeet-tdt-0.6b-v2": "istupakov/parakeet-tdt-0.6b-v2-onnx",
}
SILERO_REPO = "onnx-community/silero-vad"
SILERO_FILE = "onnx/model.onnx"


class ModelManager:
    """
    Validates and fetches the artifacts a SpeechConfig points at.

    Decoder artifacts are a model directory with config.json (see
    resolve_model_artifacts); the VAD artifact is a single ONNX file.
    """

    @staticmethod
    def get_missing_models(config: SpeechConfig) -> List[str]:
        """
        Returns list of missing model names: ['decoder', 'vad'] or a subset.
        """
        missing = []

        if not ModelManager.validate_model('decoder', config):
            missing.append('decoder')

        if not ModelManager.validate_model('vad', config):
            missing.append('vad')

        return missing

    @staticmethod
    def validate_model(model_name: str, config: SpeechConfig) -> bool:
        """
        Validates that a model artifact exists and is non-empty.

        Args:
            model_name: 'decoder' or 'vad'
            config: Service options holding the artifact paths

        Returns:
            True if the artifact is present
        """
        if model_name == 'decoder':
            model_path = Path(config.model_path) / "config.json"
        elif model_name == 'vad':
            model_path = Path(config.vad_model_path)
        else:
            return False

        return model_path.exists() and model_path.stat().st_size > 0

    @staticmethod
    def download_models(config: SpeechConfig) -> List[str]:
        """
        Downloads every missing model.

        Returns:
            Names of the models that were downloaded

        Raises:
            KeyError: If no repository is known for config.model_name
        """
        missing = ModelManager.get_missing_models(config)

        for model_name in missing:
            logging.info(f"ModelManager: downloading {model_name}")
            if model_name == 'decoder':
                ModelManager._download_decoder(config)
            else:
                ModelManager._download_silero(config)

        return missing

    @staticmethod
    def _download_decoder(config: SpeechConfig) -> None:
        """
        Downloads the onnx-asr decoder export, skipping quantized variants.
        """
        repo_id = DECODER_REPOS[config.model_name]
        model_dir = Path(config.model_path)
        model_dir.mkdir(parents=True, exist_ok=True)

        snapshot_download(
            repo_id=repo_id,
            local_dir=str(model_dir),
            ignore_patterns=["*.int8.onnx", "README.md"]
        )

    @staticmethod
    def _download_silero(config: SpeechConfig) -> None:
        """
        Downloads Silero VAD and moves onnx/model.onnx to vad_model_path.
        """
        target_path = Path(config.vad_model_path)
        silero_dir = target_path.parent
        silero_dir.mkdir(parents=True, exist_ok=True)

        hf_hub_download(
            repo_id=SILERO_REPO,
            filename=SILERO_FILE,
            local_dir=str(silero_dir)
        )

        source_path = silero_dir / SILERO_FILE
        if source_path.exists():
            shutil.copy2(source_path, target_path)
            shutil.rmtree(silero_dir / "onnx", ignore_errors=True)
