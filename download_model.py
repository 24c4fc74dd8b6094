# download_model.py
"""Download the models a speech config needs.

Usage: python download_model.py [--config=config/speech_config.json]
"""

import sys
from pathlib import Path

from speechstream.ModelManager import ModelManager
from speechstream.SpeechConfig import SpeechConfig, load_config


if __name__ == "__main__":
    config_path = Path("config/speech_config.json")
    for arg in sys.argv[1:]:
        if arg.startswith("--config="):
            config_path = Path(arg.split("=", 1)[1])

    config = SpeechConfig.from_dict(load_config(config_path)) if config_path.exists() else SpeechConfig()

    missing = ModelManager.get_missing_models(config)
    if not missing:
        print("All models are already present.")
        sys.exit(0)

    print(f"Downloading models: {', '.join(missing)}")
    ModelManager.download_models(config)

    print(f"Decoder model: {config.model_path}")
    print(f"VAD model: {config.vad_model_path}")
    print("\n=== All models downloaded successfully! ===")
