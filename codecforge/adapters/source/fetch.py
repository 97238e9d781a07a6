"""
Source fetcher — download, verify and extract a pinned upstream source.

Order of operations for a tarball pin:

    download (retried)  →  sha256 verify  →  extract to temp dir  →  rename

A checksum mismatch deletes the download and raises before anything is
extracted, so no compiler ever sees unverified code. Extraction goes to a
temporary directory that is renamed into place only when complete; an
existing source directory is therefore always a whole one.

Git pins are cloned and checked out at the pinned commit, through the
same rename-into-place step.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

from codecforge.adapters.shell.command import CommandRunner
from codecforge.core.errors import SourceFetchError, SourceIntegrityError
from codecforge.core.ledger import ledger_key
from codecforge.core.models.diagnostic import Diagnostic
from codecforge.core.models.version import VersionPin
from codecforge.core.reliability.retry import Backoff, retry_call

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024
_USER_AGENT = "codecforge-source-fetcher"


def parse_checksum(value: str, target: str = "") -> str:
    """Normalize ``sha256:<hex>`` or bare ``<hex>`` to lower-case hex.

    Raises:
        SourceIntegrityError: If the value names another algorithm; such a
            pin can never be verified.
    """
    value = value.strip()
    if ":" in value:
        algo, _, value = value.partition(":")
        if algo.lower() != "sha256":
            key = ledger_key(target) if target else "<NAME>"
            diag = Diagnostic(
                what=f"Unsupported checksum algorithm '{algo}'" + (f" for {target}" if target else ""),
                root_cause="pinned checksums must be sha256",
                fix=f"Pin {key}_SHA256 as sha256:<hex> or bare hex in the version ledger",
                target=target or None,
            )
            diag.failed("checksum", f"{algo}:{value}")
            raise SourceIntegrityError(diag)
    return value.lower()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


class SourceFetcher:
    """Fetch pinned sources into ``sources_dir``.

    Args:
        sources_dir: Root for downloads and extracted trees.
        retries: Network retries after the first attempt.
        backoff: Base delay in seconds for the exponential backoff.
        timeout: Socket timeout for a single download attempt.
    """

    def __init__(
        self,
        sources_dir: Path,
        retries: int = 3,
        backoff: float = 2.0,
        timeout: float = 300.0,
    ):
        self.sources_dir = sources_dir
        self.retries = retries
        self.backoff = backoff
        self.timeout = timeout

    @property
    def downloads_dir(self) -> Path:
        return self.sources_dir / "downloads"

    def source_dir(self, pin: VersionPin) -> Path:
        return self.sources_dir / f"{pin.dependency_name}-{pin.ref}"

    def fetch(self, pin: VersionPin, runner: CommandRunner | None = None) -> Path:
        """Return the extracted source tree for ``pin``, fetching if needed.

        Raises:
            SourceFetchError: If the download or clone keeps failing.
            SourceIntegrityError: If the download does not match its checksum.
        """
        dest = self.source_dir(pin)
        if dest.is_dir():
            logger.debug("Source for %s@%s already present: %s", pin.dependency_name, pin.ref, dest)
            return dest
        if not pin.source_url:
            raise SourceFetchError(
                Diagnostic(
                    what=f"No source URL for {pin.dependency_name}@{pin.ref}",
                    root_cause="the version ledger pins a ref but no download locator",
                    fix=f"Add a _URL or _GIT_URL entry for {pin.dependency_name} to the ledger",
                    target=pin.dependency_name,
                ).failed("source locator", "missing")
            )

        self.sources_dir.mkdir(parents=True, exist_ok=True)
        if pin.is_git:
            return self._fetch_git(pin, dest, runner or CommandRunner())
        archive = self.download(pin)
        return self._extract(pin, archive, dest)

    # ── Tarballs ─────────────────────────────────────────────────

    def download(self, pin: VersionPin) -> Path:
        """Download and verify the archive for ``pin``; reuse a verified copy."""
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        name = Path(urllib.parse.urlparse(pin.source_url).path).name or pin.dependency_name
        archive = self.downloads_dir / f"{pin.dependency_name}-{pin.ref}-{name}"

        if archive.is_file() and pin.checksum:
            if sha256_file(archive) == parse_checksum(pin.checksum, pin.dependency_name):
                logger.debug("Reusing verified download %s", archive)
                return archive
            archive.unlink()

        if not archive.is_file():
            try:
                retry_call(
                    lambda: self._download_once(pin.source_url, archive),
                    retry_on=(urllib.error.URLError, TimeoutError, ConnectionError),
                    backoff=Backoff(max_attempts=self.retries, base_delay=self.backoff),
                    label=f"download {pin.dependency_name}",
                )
            except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
                diag = Diagnostic(
                    what=f"Cannot download {pin.dependency_name}@{pin.ref}",
                    root_cause=f"network failure after {self.retries} retries: {e}",
                    fix=f"Check network access and {ledger_key(pin.dependency_name)}_URL in the version ledger",
                    target=pin.dependency_name,
                )
                diag.failed("download", pin.source_url)
                raise SourceFetchError(diag) from e

        self.verify(pin, archive)
        return archive

    def _download_once(self, url: str, archive: Path) -> None:
        logger.info("Downloading %s", url)
        partial = archive.with_name(archive.name + ".part")
        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response, partial.open("wb") as out:
                shutil.copyfileobj(response, out, _CHUNK)
            partial.replace(archive)
        finally:
            partial.unlink(missing_ok=True)

    def verify(self, pin: VersionPin, archive: Path) -> None:
        """Check ``archive`` against the pinned checksum.

        On mismatch the archive is deleted and SourceIntegrityError raised.
        A pin without a checksum is accepted with a warning.
        """
        if not pin.checksum:
            logger.warning(
                "%s@%s has no pinned checksum; download is unverified",
                pin.dependency_name, pin.ref,
            )
            return

        try:
            expected = parse_checksum(pin.checksum, pin.dependency_name)
        except SourceIntegrityError:
            archive.unlink(missing_ok=True)
            raise
        actual = sha256_file(archive)
        if actual == expected:
            logger.debug("Checksum OK for %s", archive.name)
            return

        archive.unlink(missing_ok=True)
        key = ledger_key(pin.dependency_name)
        diag = Diagnostic(
            what=f"Checksum mismatch for {pin.dependency_name}@{pin.ref}",
            root_cause="the downloaded archive differs from the pinned one (corrupt download or changed upstream)",
            fix=f"Verify the upstream release and update {key}_SHA256 in the version ledger",
            target=pin.dependency_name,
        )
        diag.passed("download", pin.source_url)
        diag.failed("sha256", f"expected {expected}, got {actual}")
        raise SourceIntegrityError(diag)

    def _extract(self, pin: VersionPin, archive: Path, dest: Path) -> Path:
        tmp = Path(tempfile.mkdtemp(dir=self.sources_dir, prefix=f".{dest.name}-"))
        try:
            shutil.unpack_archive(archive, tmp, filter="data")
            entries = list(tmp.iterdir())
            # Most tarballs wrap everything in one top-level directory
            root = entries[0] if len(entries) == 1 and entries[0].is_dir() else tmp
            root.rename(dest)
        except (OSError, shutil.ReadError, ValueError) as e:
            archive.unlink(missing_ok=True)
            raise SourceFetchError(
                Diagnostic(
                    what=f"Cannot extract {archive.name}",
                    root_cause=str(e),
                    fix="Check that the ledger URL points at a tar or zip archive",
                    target=pin.dependency_name,
                ).passed("download", str(archive)).failed("extract", str(e))
            ) from e
        finally:
            shutil.rmtree(tmp, ignore_errors=True)
        logger.info("Extracted %s to %s", archive.name, dest)
        return dest

    # ── Git ──────────────────────────────────────────────────────

    def _fetch_git(self, pin: VersionPin, dest: Path, runner: CommandRunner) -> Path:
        tmp = Path(tempfile.mkdtemp(dir=self.sources_dir, prefix=f".{dest.name}-"))
        checkout = tmp / "src"
        try:
            retry_call(
                lambda: self._clone_once(pin, checkout, runner),
                retry_on=(SourceFetchError,),
                backoff=Backoff(max_attempts=self.retries, base_delay=self.backoff),
                label=f"clone {pin.dependency_name}",
            )
            result = runner.run(["git", "-C", str(checkout), "checkout", "--quiet", "--detach", pin.ref])
            if not result.ok:
                raise SourceFetchError(
                    Diagnostic(
                        what=f"Cannot check out {pin.ref} for {pin.dependency_name}",
                        root_cause=f"commit {pin.ref} is not reachable in {pin.source_url}",
                        fix="Pin a commit that exists upstream",
                        target=pin.dependency_name,
                        log_path=str(runner.log_path) if runner.log_path else None,
                    ).passed("clone", pin.source_url).failed("checkout", result.describe())
                )
            checkout.rename(dest)
        finally:
            shutil.rmtree(tmp, ignore_errors=True)
        logger.info("Checked out %s@%s to %s", pin.dependency_name, pin.ref, dest)
        return dest

    def _clone_once(self, pin: VersionPin, checkout: Path, runner: CommandRunner) -> None:
        shutil.rmtree(checkout, ignore_errors=True)
        result = runner.run(["git", "clone", "--quiet", pin.source_url, str(checkout)])
        if not result.ok:
            raise SourceFetchError(
                Diagnostic(
                    what=f"Cannot clone {pin.source_url}",
                    root_cause=result.describe(),
                    fix="Check network access and the _GIT_URL entry in the version ledger",
                    target=pin.dependency_name,
                ).failed("clone", result.describe())
            )
