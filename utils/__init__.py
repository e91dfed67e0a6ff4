# utils/__init__.py

from utils.logger import logger
from utils.config import load_cfg
from utils.retry import call_with_retries

__all__ = ["logger", "load_cfg", "call_with_retries"]
