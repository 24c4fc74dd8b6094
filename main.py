# main.py
"""Run a speech service over the microphone or an audio file.

Usage:
    python main.py [-v] [--config=config/speech_config.json] [--input-file=speech.wav]
"""
import sys
import time
import threading
import logging
from pathlib import Path

from speechstream.LoggingSetup import setup_logging
from speechstream.ModelManager import ModelManager
from speechstream.SpeechConfig import SpeechConfig, load_config
from speechstream.SpeechServiceRegistry import SpeechServiceRegistry

PROJECT_DIR = Path(__file__).resolve().parent
LOGS_DIR = PROJECT_DIR / "logs"
DEFAULT_CONFIG = PROJECT_DIR / "config" / "speech_config.json"
CONNECT_TIMEOUT = 120.0  # seconds


def print_recognition(text, stats) -> None:
    print(f"\n{text}  [{stats.recog_time}ms / {stats.audio_length}ms audio]", flush=True)


def print_hotword(hotword, text, stats) -> None:
    print(f"\n({hotword}) {text}", flush=True)


def print_no_recognition(hotword) -> None:
    if hotword:
        print(f"\n({hotword}) <no recognition>", flush=True)


def print_connect(connected) -> None:
    print("Ready, listening..." if connected else "Disconnected.", flush=True)


def wait_for_connection(service, timeout: float = CONNECT_TIMEOUT) -> bool:
    """Block until the decode worker reports ready or exits.

    Returns:
        True if the service connected within timeout
    """
    settled = threading.Event()

    def on_connect(connected) -> None:
        settled.set()

    service.on('connect', on_connect)
    try:
        if not service.connected:
            settled.wait(timeout)
    finally:
        service.off('connect', on_connect)
    return service.connected


if __name__ == "__main__":
    registry = None
    source = None
    try:
        verbose = "-v" in sys.argv
        is_frozen = getattr(sys, 'frozen', False)

        setup_logging(LOGS_DIR, verbose=verbose, is_frozen=is_frozen)

        config_path = DEFAULT_CONFIG
        input_file = None      # Default: use microphone

        for arg in sys.argv[1:]:
            if arg.startswith("--config="):
                config_path = Path(arg.split("=", 1)[1])
            elif arg.startswith("--input-file="):
                input_file = arg.split("=", 1)[1]

        config = SpeechConfig.from_dict(load_config(config_path))

        missing_models = ModelManager.get_missing_models(config)
        if missing_models:
            logging.error(f"Missing models: {', '.join(missing_models)}. Run 'python download_model.py' first.")
            sys.exit(1)

        registry = SpeechServiceRegistry()
        service, _ = registry.get_or_create(SpeechServiceRegistry.service_id(config), config)
        service.on('connect', print_connect)
        service.on('recognize', print_recognition)
        service.on('hotword', print_hotword)
        service.on('no-recognition', print_no_recognition)
        service.connect()

        if not wait_for_connection(service):
            logging.error("Decode worker did not become ready, exiting.")
            sys.exit(1)

        if input_file:
            from speechstream.sound.FileAudioSource import FileAudioSource
            source = FileAudioSource(service.stream_data, input_file,
                                     sample_rate=config.sample_rate,
                                     chunk_duration=config.chunk_duration,
                                     verbose=verbose)
        else:
            from speechstream.sound.AudioSource import AudioSource
            source = AudioSource(service.stream_data,
                                 sample_rate=config.sample_rate,
                                 chunk_duration=config.chunk_duration,
                                 verbose=verbose)
        source.start()

        while source.is_running:
            time.sleep(0.1)

        if input_file:
            # Trailing silence ends the last utterance
            silence = bytes(int(config.sample_rate * config.chunk_duration) * 2)
            for _ in range(int(config.silence_threshold / (config.chunk_duration * 1000)) + 3):
                service.stream_data(silence)
                time.sleep(config.chunk_duration)
            time.sleep(2.0)

    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
    except Exception as e:
        logging.error(f"ERROR: {type(e).__name__}: {e}")
        import traceback
        logging.error(traceback.format_exc())
        sys.exit(1)
    finally:
        if source:
            source.stop()
        if registry:
            registry.destroy_all()
