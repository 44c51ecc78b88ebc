import contextlib
import logging
import time
from pathlib import Path
from typing import Optional

import aiofiles
from slugify import slugify


@contextlib.contextmanager
def timed_context(_l: logging.Logger, msg: str):
    """
    Context manager to time a block of code.
    """
    start_time = time.time()
    yield
    end_time = time.time()
    _l.info(f"{msg} took {end_time - start_time:.2f} seconds")


def is_true_value(value):
    if value is None:
        return False

    if isinstance(value, bool):
        return value

    elif value.lower() in ["true", "1", "yes", 'y']:
        return True

    elif value.lower() in ["false", "0", "no", 'n']:
        return False

    else:
        raise ValueError(f"Invalid value for boolean conversion: {value}")


def safe_decode_string(bs: bytes):
    assert type(bs) == bytes
    try:
        return bs.decode('utf-8')
    except UnicodeDecodeError:
        try:
            return bs.decode('latin-1')
        except UnicodeDecodeError:
            return bs.decode('utf-8', errors='replace')


def debug_file_name(label: str) -> str:
    # "client - http://localhost:3000/#/todos" -> "client-http-localhost-3000-todos.json"
    return f"{slugify(label) or 'coverage'}.json"


async def read_text_file(path: Path) -> Optional[str]:
    if not Path(path).is_file():
        return None
    async with aiofiles.open(path, 'rb') as f:
        data = await f.read()
    return safe_decode_string(data)
