"""Shared helpers for settings components."""

from pathlib import Path

from decouple import AutoConfig

# Project root: the directory containing the `skydrive` package
BASE_DIR = Path(__file__).parent.parent.parent.parent

# Looks for `.env` / `settings.ini` in config/, falls back to environment
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))
