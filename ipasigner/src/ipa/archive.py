"""Zip container handling for IPA files.

An IPA is a plain zip whose top-level entry is ``Payload/``. Extraction keeps
the internal layout; creation zips a directory so that its own name is the
top-level entry of the new archive.
"""

import os
import stat
import zipfile
import zlib
from pathlib import Path

from ipasigner.logger import get_console
from ipasigner.src.core.errors import ArchiveCorrupt, ArchiveError, FilesystemError


def _restore_mode(info: zipfile.ZipInfo, target: Path) -> None:
    """Apply the POSIX permission bits stored in the zip entry, if any"""
    mode = (info.external_attr >> 16) & 0o777
    if mode:
        os.chmod(target, mode)


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


def _extract_symlink(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest_dir: Path) -> None:
    """Recreate a symlink entry, refusing links that point outside dest_dir"""
    link_target = zf.read(info).decode("utf-8")
    link_path = dest_dir / info.filename
    root = dest_dir.resolve()
    resolved = (link_path.parent / link_target).resolve()
    if (
        Path(info.filename).is_absolute()
        or ".." in Path(info.filename).parts
        or os.path.isabs(link_target)
        or (resolved != root and root not in resolved.parents)
    ):
        raise ArchiveCorrupt(f"Unsafe symlink entry in archive: {info.filename}")
    link_path.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(link_target, link_path)


def extract(archive_path: Path, dest_dir: Path) -> Path:
    """Extract an archive into dest_dir, keeping its directory structure"""
    console = get_console()
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)

    try:
        zf = zipfile.ZipFile(archive_path)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveCorrupt(f"Cannot open archive {archive_path.name}: {e}") from e
    except OSError as e:
        raise ArchiveError(f"Cannot read archive {archive_path}: {e}") from e

    with zf:
        try:
            for info in zf.infolist():
                if _is_symlink(info):
                    _extract_symlink(zf, info, dest_dir)
                    continue
                target = Path(zf.extract(info, dest_dir))
                if not info.is_dir():
                    _restore_mode(info, target)
        # zlib.error: bad deflate stream, RuntimeError: encrypted entry,
        # UnicodeDecodeError: symlink target that is not UTF-8
        except (
            zipfile.BadZipFile,
            zlib.error,
            EOFError,
            NotImplementedError,
            RuntimeError,
            UnicodeDecodeError,
        ) as e:
            raise ArchiveCorrupt(f"Archive {archive_path.name} is corrupt: {e}") from e
        except OSError as e:
            raise FilesystemError(f"Failed to extract {archive_path.name}: {e}") from e

    console.log(f"[green]Extracted[/] {archive_path.name} -> {dest_dir}")
    return dest_dir


def _iter_entries(source_dir: Path):
    """Yield every path below source_dir (directories first, sorted)"""
    for root, dirs, files in os.walk(source_dir):
        root_path = Path(root)
        yield root_path
        # os.walk does not descend into linked directories; store them as links
        linked = sorted(d for d in dirs if (root_path / d).is_symlink())
        dirs[:] = sorted(d for d in dirs if d not in linked)
        for name in sorted(files) + linked:
            yield root_path / name


def create(source_dir: Path, output_archive_path: Path) -> Path:
    """Zip source_dir into a new archive rooted at the directory's own name.

    The output file is opened in exclusive mode: an existing file with the same
    name is never overwritten. A partially written archive is removed before the
    error is raised.
    """
    console = get_console()
    source_dir = Path(source_dir)
    output_archive_path = Path(output_archive_path)

    if not source_dir.is_dir():
        raise FilesystemError(f"Cannot package {source_dir}: not a directory")

    base = source_dir.parent
    created = False
    try:
        with zipfile.ZipFile(
            output_archive_path, "x", compression=zipfile.ZIP_DEFLATED
        ) as zf:
            created = True
            for path in _iter_entries(source_dir):
                arcname = path.relative_to(base).as_posix()
                if path.is_symlink():
                    # Frameworks use relative symlinks; store them as links
                    info = zipfile.ZipInfo(arcname)
                    info.create_system = 3
                    info.external_attr = (stat.S_IFLNK | 0o777) << 16
                    zf.writestr(info, os.readlink(path))
                else:
                    zf.write(path, arcname)
    except FileExistsError as e:
        raise FilesystemError(
            f"Refusing to overwrite existing archive {output_archive_path}"
        ) from e
    except OSError as e:
        if created:
            output_archive_path.unlink(missing_ok=True)
        raise FilesystemError(
            f"Failed to create archive {output_archive_path}: {e}"
        ) from e

    console.log(f"[green]Created archive[/] {output_archive_path}")
    return output_archive_path
