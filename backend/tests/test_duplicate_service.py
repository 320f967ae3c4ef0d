from types import SimpleNamespace

from listings.services.duplicate_service import DuplicateKey, find_duplicate, normalize_text, phone_suffix


def _listing(**fields):
    base = {"slug": "", "name": "", "address": "", "city": "", "phone": ""}
    base.update(fields)
    return SimpleNamespace(**base)


def test_normalize_text_strips_punctuation_and_whitespace():
    assert normalize_text("  Joe's   Plumbing, LLC ") == "joes plumbing llc"
    assert normalize_text(None) == ""


def test_phone_suffix_requires_enough_digits():
    assert phone_suffix("(480) 555-0100") == "5550100"
    assert phone_suffix("555-01") == ""


def test_exact_slug_wins_even_when_names_differ():
    stored = _listing(slug="joes-plumbing", name="Something Else")
    assert find_duplicate(_listing(slug="joes-plumbing", name="Joe's Plumbing"), [stored]) is stored


def test_name_and_address_match_after_normalization():
    stored = _listing(slug="a", name="Joe's Plumbing", address="123 Main St.")
    candidate = _listing(slug="b", name="JOES PLUMBING", address="123 main st")
    assert find_duplicate(candidate, [stored]) is stored


def test_name_city_and_phone_suffix_match():
    stored = _listing(slug="a", name="Joe's Plumbing", city="Mesa", phone="+1 (480) 555-0100")
    candidate = _listing(slug="b", name="Joes Plumbing", city="mesa", phone="480.555.0100")
    assert find_duplicate(candidate, [stored]) is stored


def test_same_city_without_phone_is_not_a_duplicate():
    stored = _listing(slug="a", name="Joe's Plumbing", city="Mesa")
    candidate = _listing(slug="b", name="Joe's Plumbing", city="Mesa")
    assert find_duplicate(candidate, [stored]) is None


def test_different_names_never_match():
    stored = _listing(slug="a", name="Joe's Plumbing", address="123 Main St")
    candidate = _listing(slug="b", name="Joe's Electric", address="123 Main St")
    assert find_duplicate(candidate, [stored]) is None


def test_first_match_wins():
    first = _listing(slug="a", name="Joe's Plumbing", address="123 Main St")
    second = _listing(slug="b", name="Joe's Plumbing", address="123 Main St")
    assert find_duplicate(_listing(slug="c", name="Joe's Plumbing", address="123 Main St"), [first, second]) is first


def test_duplicate_detection_is_symmetric_for_keys():
    left = DuplicateKey.from_listing(_listing(name="Acme", city="Mesa", phone="4805550100"))
    right = DuplicateKey.from_listing(_listing(name="acme", city="MESA", phone="555-0100"))
    assert left.matches(right) and right.matches(left)
