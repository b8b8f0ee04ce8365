"""
Access credential resolution for the mirror pull.

The credential file is the customer access key. It may contain an SSH
private key body; its last non-blank, non-comment line names the feed
account and repository as:

    identity@repository

where repository is either "host:/path" (ssh), "rsync://host/module" or an
"https://..." archive URL.
"""
from dataclasses import dataclass
from pathlib import Path

from errors import MalformedCredential, MissingCredential

KEY_MARKERS = ("-----BEGIN", "-----END")


@dataclass(frozen=True)
class AccessCredential:
    """Identity and repository locator used to authenticate the mirror pull."""
    identity: str
    repository: str
    key_path: Path

    @property
    def has_private_key(self) -> bool:
        try:
            return any(m in self.key_path.read_text() for m in KEY_MARKERS)
        except OSError:
            return False


def credential_present(path) -> bool:
    """Report whether a credential file exists, without reading it."""
    return Path(path).is_file()


def _locator_line(text: str) -> str:
    lines = [
        line.strip() for line in text.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    if not lines:
        return ""
    last = lines[-1]
    if last.startswith(KEY_MARKERS):
        return ""
    return last


def resolve_credential(path) -> AccessCredential:
    """
    Load the access credential.

    Args:
        path: Credential file location

    Returns:
        AccessCredential with identity and repository

    Raises:
        MissingCredential: If the file does not exist
        MalformedCredential: If no identity@repository line can be parsed
    """
    key_path = Path(path)
    if not key_path.is_file():
        raise MissingCredential(f"Access credential not found: {key_path}")

    try:
        text = key_path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedCredential(f"Cannot read access credential {key_path}: {e}") from e

    locator = _locator_line(text)
    identity, sep, repository = locator.partition("@")
    identity = identity.strip()
    repository = repository.strip()

    if not sep or not identity or not repository or " " in identity:
        raise MalformedCredential(
            f"Access credential {key_path} has no 'identity@repository' line"
        )

    return AccessCredential(identity=identity, repository=repository, key_path=key_path)
