from edubridge.services.slug import MAX_SLUG_LENGTH, generate_slug, is_valid_slug


def test_generate_slug_normalizes_text():
    assert generate_slug("Intro to Chemistry!") == "intro-to-chemistry"
    assert generate_slug("  Café   Français 101 ") == "cafe-francais-101"
    assert generate_slug("***") == "course"


def test_generated_slugs_are_valid():
    for title in ("Algebra I", "Ünïcödé Tïtle", "x" * 300):
        slug = generate_slug(title)
        assert is_valid_slug(slug)
        assert len(slug) <= MAX_SLUG_LENGTH


def test_invalid_slugs():
    assert not is_valid_slug("")
    assert not is_valid_slug("Upper-Case")
    assert not is_valid_slug("double--dash")
    assert not is_valid_slug("-leading")
