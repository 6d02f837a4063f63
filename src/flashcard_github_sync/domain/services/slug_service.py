"""Domain service for card file names and paths in the remote repository."""

import re
import unicodedata

ARTIFACT_SUFFIX = ".md"
SLUG_SEPARATOR = "__"
MAX_SLUG_LENGTH = 40
MEDIA_DIR = "media"
CONFLICTS_DIR = "conflicts"


class SlugService:
    """Builds remote paths for cards and recovers card ids from file names.

    Two file name strategies exist: ``id`` gives ``<card_id>.md`` and
    ``slug`` gives ``<slug>__<card_id>.md`` where the slug is derived from
    the question text. Slugs never contain the separator, so the id is
    always the part after the last ``__``.
    """

    @staticmethod
    def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
        """Normalize text to a lowercase ASCII slug."""
        # Drop media references and markdown punctuation before normalizing
        text = re.sub(r"!\[[^\]]*\]\([^)]*\)", " ", text)
        normalized = unicodedata.normalize("NFKD", text)
        ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
        slug = re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")
        slug = slug[:max_length].rstrip("-")
        return slug

    @staticmethod
    def join(*parts: str) -> str:
        """Join path segments with '/', skipping empty ones."""
        return "/".join(part.strip("/") for part in parts if part and part.strip("/"))

    @classmethod
    def file_name(cls, card_id: str, question: str = "", strategy: str = "id") -> str:
        if strategy == "slug":
            slug = cls.slugify(question)
            if slug:
                return f"{slug}{SLUG_SEPARATOR}{card_id}{ARTIFACT_SUFFIX}"
        return f"{card_id}{ARTIFACT_SUFFIX}"

    @classmethod
    def card_path(
        cls, subdir: str, card_id: str, question: str = "", strategy: str = "id"
    ) -> str:
        return cls.join(subdir, cls.file_name(card_id, question, strategy))

    @staticmethod
    def is_artifact_path(path: str) -> bool:
        return path.endswith(ARTIFACT_SUFFIX)

    @staticmethod
    def card_id_from_path(path: str) -> str:
        """Recover the card id embedded in a card file name."""
        name = path.rsplit("/", 1)[-1]
        if name.endswith(ARTIFACT_SUFFIX):
            name = name[: -len(ARTIFACT_SUFFIX)]
        return name.rsplit(SLUG_SEPARATOR, 1)[-1]

    @classmethod
    def slug_from_path(cls, path: str) -> str | None:
        name = path.rsplit("/", 1)[-1]
        if SLUG_SEPARATOR not in name:
            return None
        return name.rsplit(SLUG_SEPARATOR, 1)[0]

    @classmethod
    def media_path(cls, subdir: str, name: str) -> str:
        """Repository path of a media file referenced as ``media/<name>``."""
        return cls.join(subdir, MEDIA_DIR, name)

    @classmethod
    def conflict_path(cls, subdir: str, card_id: str, remote_sha: str | None) -> str:
        """One record per card and remote version."""
        version = (remote_sha or "unknown")[:12]
        return cls.join(subdir, CONFLICTS_DIR, f"{card_id}-{version}{ARTIFACT_SUFFIX}")
