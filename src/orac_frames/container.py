from __future__ import annotations

"""Container I/O used by the frame layer.

A *container* is one file holding named components: the administrative
``HEADER`` component plus numbered sub-frames (``I1``, ``I2``, ... or
``I1BEAMA``, ``I1BEAMB``, ...). The frame layer only talks to the narrow
:class:`ContainerStore` protocol; :class:`FitsContainerStore` implements it on
top of :mod:`astropy.io.fits`, with each component stored as an extension
identified by ``EXTNAME`` and the container type recorded in the primary HDU.

Every failure (missing file, unreadable FITS, missing component) surfaces as
:class:`~orac_frames.errors.ContainerIOError`.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Literal, Mapping, Protocol

import numpy as np
from astropy.io import fits

from .errors import ContainerIOError
from .version import as_header_cards


log = logging.getLogger(__name__)

Mode = Literal["READ", "UPDATE"]

_SKIP_KEYS = {"COMMENT", "HISTORY", ""}
_STRUCTURAL_RE = re.compile(r"^(SIMPLE|XTENSION|BITPIX|NAXIS\d*|EXTEND|PCOUNT|GCOUNT|EXTNAME)$")


def header_to_dict(hdr: fits.Header) -> dict[str, Any]:
    """Plain mapping of a FITS header (commentary cards dropped)."""

    out: dict[str, Any] = {}
    for card in hdr.cards:
        if card.keyword in _SKIP_KEYS:
            continue
        out[card.keyword] = card.value
    return out


def has_user_keywords(hdr: Mapping[str, Any]) -> bool:
    """True when ``hdr`` holds more than the FITS structural cards."""

    return any(not _STRUCTURAL_RE.match(str(k)) for k in hdr)


@dataclass
class ContainerHandle:
    path: Path
    mode: Mode
    hdul: fits.HDUList


class ContainerStore(Protocol):
    suffix: str

    def path_for(self, root: str | Path) -> Path: ...

    def exists(self, root: str | Path) -> bool: ...

    def open(self, root: str | Path, mode: Mode = "READ") -> Any: ...

    def enumerate_children(self, handle: ContainerHandle) -> list[str]: ...

    def has_component(self, handle: ContainerHandle, name: str) -> bool: ...

    def erase_component(self, handle: ContainerHandle, name: str) -> None: ...

    def create_container(self, root: str | Path, type_name: str) -> Path: ...

    def copy_component(self, src_root: str | Path, dst_root: str | Path, name: str) -> None: ...

    def read_header(self, path: str | Path, component: str | None = None) -> dict[str, Any]: ...

    def hdu_headers(self, path: str | Path) -> list[dict[str, Any]]: ...

    def delete(self, path: str | Path) -> None: ...


class FitsContainerStore:
    """Named-component containers and raw files read through astropy."""

    def __init__(self, suffix: str = ".sdf"):
        self.suffix = suffix

    # -------------------------------------------------------------- paths

    def path_for(self, root: str | Path) -> Path:
        p = Path(root)
        if self.suffix and not p.name.endswith(self.suffix):
            p = p.with_name(p.name + self.suffix)
        return p

    def exists(self, root: str | Path) -> bool:
        return self.path_for(root).is_file()

    def _resolve(self, path: str | Path) -> Path:
        p = Path(path)
        if p.is_file():
            return p
        q = self.path_for(p)
        if q.is_file():
            return q
        raise ContainerIOError("No such file", path=p)

    # ------------------------------------------------------------ handles

    @contextmanager
    def open(self, root: str | Path, mode: Mode = "READ") -> Iterator[ContainerHandle]:
        path = self._resolve(root)
        fits_mode = "update" if mode == "UPDATE" else "readonly"
        try:
            hdul = fits.open(path, mode=fits_mode, memmap=False)
        except (OSError, ValueError) as e:
            raise ContainerIOError(f"Cannot open container ({e})", path=path) from e
        try:
            yield ContainerHandle(path=path, mode=mode, hdul=hdul)
        finally:
            hdul.close()

    @staticmethod
    def _index(handle: ContainerHandle, name: str) -> int | None:
        key = name.upper()
        for i, hdu in enumerate(handle.hdul):
            if i == 0:
                continue
            if str(hdu.header.get("EXTNAME", "")).strip().upper() == key:
                return i
        return None

    def enumerate_children(self, handle: ContainerHandle) -> list[str]:
        names: list[str] = []
        for i, hdu in enumerate(handle.hdul):
            if i == 0:
                continue
            names.append(str(hdu.header.get("EXTNAME", f"HDU{i}")).strip().upper())
        return names

    def has_component(self, handle: ContainerHandle, name: str) -> bool:
        return self._index(handle, name) is not None

    def erase_component(self, handle: ContainerHandle, name: str) -> None:
        if handle.mode != "UPDATE":
            raise ContainerIOError("Container not open for update", path=handle.path, component=name)
        idx = self._index(handle, name)
        if idx is None:
            raise ContainerIOError("No such component", path=handle.path, component=name)
        del handle.hdul[idx]
        log.debug("Erased %s from %s", name, handle.path)

    # ------------------------------------------------------------ writing

    def create_container(self, root: str | Path, type_name: str) -> Path:
        path = self.path_for(root)
        if path.exists():
            raise ContainerIOError("Container already exists", path=path)
        hdr = fits.Header()
        hdr["CONTTYPE"] = (str(type_name), "container type")
        for k, v in as_header_cards().items():
            hdr[k] = v
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fits.HDUList([fits.PrimaryHDU(header=hdr)]).writeto(path)
        except OSError as e:
            raise ContainerIOError(f"Cannot create container ({e})", path=path) from e
        log.debug("Created container %s (%s)", path, type_name)
        return path

    def copy_component(self, src_root: str | Path, dst_root: str | Path, name: str) -> None:
        """Copy component ``name`` from one container into another (replacing it)."""

        with self.open(src_root, "READ") as src:
            idx = self._index(src, name)
            if idx is None:
                raise ContainerIOError("No such component", path=src.path, component=name)
            hdu = src.hdul[idx]
            data = None if hdu.data is None else np.array(hdu.data, copy=True)
            new = fits.ImageHDU(data=data, header=hdu.header.copy(), name=name.upper())

        with self.open(dst_root, "UPDATE") as dst:
            old = self._index(dst, name)
            if old is not None:
                del dst.hdul[old]
            dst.hdul.append(new)

    def delete(self, path: str | Path) -> None:
        p = Path(path)
        try:
            p.unlink()
        except OSError as e:
            raise ContainerIOError(f"Cannot delete ({e})", path=p) from e

    # ------------------------------------------------------------ reading

    def read_header(self, path: str | Path, component: str | None = None) -> dict[str, Any]:
        """Header of the primary HDU, or of the named component."""

        with self.open(path, "READ") as h:
            if component is None:
                return header_to_dict(h.hdul[0].header)
            idx = self._index(h, component)
            if idx is None:
                raise ContainerIOError("No such component", path=h.path, component=component)
            return header_to_dict(h.hdul[idx].header)

    def hdu_headers(self, path: str | Path) -> list[dict[str, Any]]:
        """Headers of every HDU in file order (primary first)."""

        with self.open(path, "READ") as h:
            return [header_to_dict(hdu.header) for hdu in h.hdul]
