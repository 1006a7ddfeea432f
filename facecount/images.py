"""
Image scanning.

This module lists the photos of an input folder in a stable order and can
optionally skip exact or near duplicate photos through perceptual hashes.
It is intentionally kept decoupled from detection and counting so it can
be reused in other contexts.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Optional

from PIL import Image
import imagehash


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")


def iter_image_paths(root: Path, recursive: bool = False) -> Iterator[Path]:
    """Yield files under ``root`` with an image extension, sorted by path.

    Only the top level of ``root`` is listed unless ``recursive`` is set.
    """
    if recursive:
        found = []
        for dirpath, _dirnames, filenames in os.walk(root):
            for fn in filenames:
                if fn.lower().endswith(IMAGE_EXTENSIONS):
                    found.append(Path(dirpath) / fn)
    else:
        found = [p for p in root.iterdir()
                 if p.is_file() and p.name.lower().endswith(IMAGE_EXTENSIONS)]
    yield from sorted(found)


def image_phash(path: Path) -> Optional[str]:
    """Perceptual hash of an image as a hex string, or ``None`` if unreadable."""
    try:
        with Image.open(path) as im:
            return str(imagehash.phash(im))
    except (OSError, ValueError):
        return None


def scan_images(root: Path, recursive: bool = False, use_phash: bool = False) -> Iterator[Path]:
    """Iterate over the photos of ``root`` in sorted order.

    With ``use_phash`` enabled, a photo whose perceptual hash matches an
    earlier photo is skipped.  Files that cannot be hashed are still yielded;
    the pipeline reports them as unreadable.
    """
    seen_hashes = set()
    for path in iter_image_paths(root, recursive=recursive):
        if use_phash:
            phash = image_phash(path)
            if phash is not None:
                if phash in seen_hashes:
                    continue
                seen_hashes.add(phash)
        yield path
