"""Single-file transform adapters.

Thin wrappers around the libraries doing the real work: libsass for
SCSS/Sass, rcssmin for stylesheets, rjsmin for scripts and gzip for
compression. Every adapter is a pure function of its input.
"""

import gzip
from pathlib import Path
from typing import Union

import rcssmin
import rjsmin
import sass
from loguru import logger

from assets_packager.script_layout import reindent


class TransformError(Exception):
    """Raised when a source file cannot be read, compiled or minified."""

    def __init__(self, source_path: Union[str, Path], message: str):
        super().__init__(f"{source_path}: {message}")
        self.source_path = Path(source_path)
        self.message = message


def read_source(path: Path) -> str:
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise TransformError(path, f"could not read source ({e})") from e
    return text.replace("\r\n", "\n").replace("\r", "\n")


def compile_stylesheet(path: Path, data: str) -> str:
    """Compile SCSS or indented Sass ``data`` read from ``path`` into CSS."""
    path = Path(path)
    try:
        css = sass.compile(
            string=data,
            include_paths=[str(path.parent)],
            output_style="expanded",
            indented=path.suffix == ".sass",
        )
    except sass.CompileError as e:
        raise TransformError(path, str(e).strip()) from e
    return css.strip() + "\n"


def compile_to_css(source: Path, target: Path) -> Path:
    """Compile a preprocessed stylesheet next to itself as plain CSS."""
    css = compile_stylesheet(source, read_source(source))
    target.write_text(css, encoding="utf-8")
    logger.debug(f"Compiled {source.name} -> {target.name}")
    return target


def minify_stylesheet(data: str) -> str:
    return rcssmin.cssmin(data, keep_bang_comments=False).strip()


def process_script(data: str, minify: bool = True, indent_width: int = 4) -> str:
    """Minify a script, or re-indent it when minification is off."""
    data = data.replace("\r\n", "\n").replace("\r", "\n")
    if minify:
        result = rjsmin.jsmin(data, keep_bang_comments=False).strip()
    else:
        result = reindent(data, indent_width)
    return result


def compress(data: bytes) -> bytes:
    """Gzip ``data`` at level 9; the fixed mtime keeps output byte-stable."""
    return gzip.compress(data, compresslevel=9, mtime=0)
