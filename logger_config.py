# logger_config.py
import os
import sys
import logging

LOG_FORMAT = '%(asctime)s - %(processName)-18s - %(levelname)-8s - %(message)s'

def setup_logging(log_file=None, level=logging.INFO, console=False):
    handlers = []
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='a'))
    if console or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    root = logging.getLogger()
    if root.hasHandlers():
        root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    return root
