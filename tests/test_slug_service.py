"""Tests for remote path naming."""

from flashcard_github_sync.domain.services.slug_service import SlugService


class TestSlugService:
    """Tests for SlugService."""

    def test_slugify(self) -> None:
        assert SlugService.slugify("Why is the Sky Blue?") == "why-is-the-sky-blue"

    def test_slugify_drops_media_and_accents(self) -> None:
        assert SlugService.slugify("Café ![x](data:image/png;base64,AA) crème") == "cafe-creme"

    def test_slugify_truncates(self) -> None:
        slug = SlugService.slugify("word " * 30)

        assert len(slug) <= 40
        assert not slug.endswith("-")

    def test_id_strategy_path(self) -> None:
        assert SlugService.card_path("cards", "c1", "Question", "id") == "cards/c1.md"

    def test_slug_strategy_path(self) -> None:
        path = SlugService.card_path("cards", "c1", "What is DNA?", "slug")

        assert path == "cards/what-is-dna__c1.md"

    def test_slug_strategy_without_slug_falls_back_to_id(self) -> None:
        assert SlugService.card_path("", "c1", "???", "slug") == "c1.md"

    def test_card_id_from_path(self) -> None:
        assert SlugService.card_id_from_path("cards/what-is-dna__c1.md") == "c1"
        assert SlugService.card_id_from_path("cards/c1.md") == "c1"

    def test_slug_from_path(self) -> None:
        assert SlugService.slug_from_path("cards/what-is-dna__c1.md") == "what-is-dna"
        assert SlugService.slug_from_path("cards/c1.md") is None

    def test_media_and_conflict_paths(self) -> None:
        assert SlugService.media_path("/cards/", "a.png") == "cards/media/a.png"
        assert SlugService.conflict_path("", "c1", "0123456789abcdef0123") == (
            "conflicts/c1-0123456789ab.md"
        )
        assert SlugService.conflict_path("cards", "c1", None) == "cards/conflicts/c1-unknown.md"
