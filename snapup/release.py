"""Resolution of the release mirror, channel and artifact names."""

from urllib.parse import urlparse

from snapup.config import BUILD_INFO, DEFAULT_SCHEME, SIGNATURE_MANIFEST, SNAPSHOTS
from snapup.models import ArtifactSet, KernelBundle, ReleaseTarget

DEFAULT_PREFIX = "pub/OpenBSD"


def resolve_target(mirror: str, release: str, machine: str, set_version: str) -> ReleaseTarget:
    """Build the release target for a mirror given as a host name or a full URL.

    Examples:
        >>> resolve_target("example.org", "snapshots", "amd64", "7.5").base_url
        'https://example.org/pub/OpenBSD/snapshots/amd64/'
        >>> resolve_target("http://m.example.org/OpenBSD/", "7.5", "arm64", "7.5").base_url
        'http://m.example.org/OpenBSD/7.5/arm64/'
    """
    if "://" in mirror:
        parsed = urlparse(mirror)
        if not parsed.netloc:
            raise ValueError(f"Mirror URL has no host: {mirror}")
        prefix = parsed.path.strip("/") or DEFAULT_PREFIX
        return ReleaseTarget(
            mirror=parsed.netloc,
            scheme=parsed.scheme,
            release=release,
            machine=machine,
            set_version=set_version,
            prefix=prefix,
        )

    return ReleaseTarget(
        mirror=mirror.strip("/"),
        scheme=DEFAULT_SCHEME,
        release=release,
        machine=machine,
        set_version=set_version,
        prefix=DEFAULT_PREFIX,
    )


def release_channel(force_snapshot: bool, running_snapshot: bool, set_version: str) -> str:
    if force_snapshot or running_snapshot:
        return SNAPSHOTS
    return set_version


def meta_urls(target: ReleaseTarget) -> list[str]:
    return [target.url_for(SIGNATURE_MANIFEST), target.url_for(BUILD_INFO)]


def kernel_urls(target: ReleaseTarget, bundle: KernelBundle) -> list[str]:
    return [target.url_for(name) for name in bundle.file_names()]


def set_urls(target: ReleaseTarget, artifacts: ArtifactSet, extended: bool = False) -> list[str]:
    if extended:
        names = artifacts.extended_file_names(target.set_version)
    else:
        names = artifacts.mandatory_file_names(target.set_version)
    return [target.url_for(name) for name in names]
