import pytest
from pydantic import ValidationError

from app.schemas.content import ContentBlock, ContentPageCreate, ContentPageUpdate


def section(order=0, blocks=None, title="Section"):
    return {
        "title": title,
        "order": order,
        "blocks": blocks or [{"type": "paragraph", "value": "Hello", "order": 0}],
    }


def test_slug_is_lower_cased_and_checked():
    page = ContentPageCreate(slug="Legal/Terms-v2", title="Terms", sections=[section()])
    assert page.slug == "legal/terms-v2"


@pytest.mark.parametrize("slug", ["a", "has space", "bad!", "x" * 101])
def test_invalid_slugs(slug):
    with pytest.raises(ValidationError):
        ContentPageCreate(slug=slug, title="T", sections=[section()])


def test_sections_and_blocks_are_sorted_by_order():
    page = ContentPageCreate(
        slug="faq",
        title="FAQ",
        sections=[
            section(order=2, title="Second"),
            section(order=1, title="First", blocks=[
                {"type": "paragraph", "value": "b", "order": 5},
                {"type": "paragraph", "value": "a", "order": 1},
            ]),
        ],
    )
    assert [s.title for s in page.sections] == ["First", "Second"]
    assert [b.value for b in page.sections[0].blocks] == ["a", "b"]


def test_page_needs_a_section():
    with pytest.raises(ValidationError):
        ContentPageCreate(slug="faq", title="FAQ", sections=[])


def test_list_block_needs_non_empty_strings():
    assert ContentBlock(type="list", value=[" one ", "two"]).value == ["one", "two"]
    with pytest.raises(ValidationError):
        ContentBlock(type="list", value=[])
    with pytest.raises(ValidationError):
        ContentBlock(type="list", value=["ok", "   "])


def test_faq_block_needs_questions_and_answers():
    block = ContentBlock(type="faq", value=[{"question": "Why?", "answer": "Because."}])
    assert block.value[0].question == "Why?"
    with pytest.raises(ValidationError):
        ContentBlock(type="faq", value=[{"question": "Why?", "answer": " "}])


@pytest.mark.parametrize("block_type", ["paragraph", "image", "link"])
def test_text_blocks_need_a_string(block_type):
    assert ContentBlock(type=block_type, value=" text ").value == "text"
    with pytest.raises(ValidationError):
        ContentBlock(type=block_type, value="   ")
    with pytest.raises(ValidationError):
        ContentBlock(type=block_type, value=["not", "text"])


def test_text_block_length_limit():
    with pytest.raises(ValidationError):
        ContentBlock(type="paragraph", value="x" * 5001)


def test_update_requires_a_change():
    with pytest.raises(ValidationError):
        ContentPageUpdate()
    assert ContentPageUpdate(is_active=False).model_dump(exclude_unset=True) == {"is_active": False}
