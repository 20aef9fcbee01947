import asyncio
from io import BytesIO

import pytest
from PIL import Image

from domain.models import Field, FieldKind, OwnerTier, Project
from services.card_generation import (
    CardGenerationError,
    CardGenerator,
    StaleRenderError,
    SubmissionError,
    participant_name_from,
    requires_watermark,
    validate_submission,
)
from services.compositor import render_card

FIELDS = [
    Field(id="p", kind=FieldKind.PHOTO, name="Photo", x=5, y=5, width=30, height=40),
    Field(id="n", kind=FieldKind.TEXT, name="Name", x=40, y=10, width=50, height=10),
    Field(id="r", kind=FieldKind.TEXT, name="Role", x=40, y=25, width=50, height=10),
]


class FakeStorage:
    def __init__(self, files=None):
        self.files = dict(files or {})
        self.uploads = []

    def read(self, url):
        if url not in self.files:
            raise FileNotFoundError(url)
        return self.files[url]

    def upload(self, data, content_type, folder):
        url = f"/media/{folder}/card{len(self.uploads)}.png"
        self.uploads.append((url, data, content_type))
        return url


def _project(tier=OwnerTier.FREE) -> Project:
    return Project(
        id="proj1", name="Badges", template_image_url="/media/templates/bg.png",
        template_width=300, template_height=200, owner_tier=tier,
    )


def test_validate_submission_requires_photo_and_text():
    with pytest.raises(SubmissionError) as exc:
        validate_submission(FIELDS, {"Name": "Ada", "Role": "   "}, has_photo=False)
    assert "Photo" in str(exc.value)
    assert "Role" in str(exc.value)
    assert "Name" not in str(exc.value)

    validate_submission(FIELDS, {"Name": "Ada", "Role": "Engineer"}, has_photo=True)


def test_validate_submission_without_photo_fields():
    validate_submission(FIELDS[1:], {"Name": "Ada", "Role": "x"}, has_photo=False)


def test_watermark_depends_on_owner_tier():
    assert requires_watermark(_project(OwnerTier.FREE))
    assert not requires_watermark(_project(OwnerTier.ELITE))
    assert requires_watermark(_project("platinum"))


def test_participant_name_fallbacks():
    assert participant_name_from(FIELDS, {"Name": " Ada ", "Role": "Eng"}) == "Ada"
    assert participant_name_from(FIELDS, {"Name": "", "Role": "Eng"}) == "Eng"
    assert participant_name_from(FIELDS, {}) == "Unknown"


def test_generate_uploads_png_at_template_size(png_bytes, fonts):
    storage = FakeStorage({"/media/templates/bg.png": png_bytes(size=(300, 200))})
    generator = CardGenerator(storage, fonts=fonts)

    url = asyncio.run(generator.generate(
        _project(), FIELDS, {"Name": "Ada", "Role": "Engineer"},
        photo_bytes=png_bytes(size=(40, 60), color=(255, 0, 0, 255)),
    ))

    assert url == storage.uploads[0][0]
    assert storage.uploads[0][2] == "image/png"
    card = Image.open(BytesIO(storage.uploads[0][1]))
    assert card.format == "PNG"
    assert card.size == (300, 200)


def test_watermark_flag_reaches_renderer(png_bytes, fonts):
    seen = []

    def spy_renderer(template, fields, values, watermark, photo=None, fonts=None):
        seen.append(watermark)
        return render_card(template, fields, values, watermark, photo=photo, fonts=fonts)

    storage = FakeStorage({"/media/templates/bg.png": png_bytes()})
    generator = CardGenerator(storage, fonts=fonts, renderer=spy_renderer)
    asyncio.run(generator.generate(_project(OwnerTier.ELITE), FIELDS[1:], {"Name": "Ada", "Role": "x"}))
    asyncio.run(generator.generate(_project(OwnerTier.FREE), FIELDS[1:], {"Name": "Ada", "Role": "x"}))
    assert seen == [False, True]


def test_superseded_render_is_discarded(png_bytes, fonts):
    storage = FakeStorage({"/media/templates/bg.png": png_bytes()})
    generator = CardGenerator(storage, fonts=fonts)
    values = {"Name": "Ada", "Role": "x"}

    async def run_both():
        return await asyncio.gather(
            generator.generate(_project(), FIELDS[1:], values, request_key="client-1"),
            generator.generate(_project(), FIELDS[1:], values, request_key="client-1"),
            return_exceptions=True,
        )

    older, newer = asyncio.run(run_both())
    assert isinstance(older, StaleRenderError)
    assert isinstance(newer, str)
    assert len(storage.uploads) == 1


def test_different_keys_do_not_interfere(png_bytes, fonts):
    storage = FakeStorage({"/media/templates/bg.png": png_bytes()})
    generator = CardGenerator(storage, fonts=fonts)
    values = {"Name": "Ada", "Role": "x"}

    async def run_both():
        return await asyncio.gather(
            generator.generate(_project(), FIELDS[1:], values, request_key="a"),
            generator.generate(_project(), FIELDS[1:], values, request_key="b"),
        )

    urls = asyncio.run(run_both())
    assert len(set(urls)) == 2
    assert len(storage.uploads) == 2


def test_missing_template_raises_generation_error(fonts):
    storage = FakeStorage()
    generator = CardGenerator(storage, fonts=fonts)
    with pytest.raises(CardGenerationError, match="could not generate card"):
        asyncio.run(generator.generate(_project(), FIELDS[1:], {"Name": "Ada", "Role": "x"}))
    assert storage.uploads == []


def test_undecodable_photo_raises_generation_error(png_bytes, fonts):
    storage = FakeStorage({"/media/templates/bg.png": png_bytes()})
    generator = CardGenerator(storage, fonts=fonts)
    with pytest.raises(CardGenerationError):
        asyncio.run(generator.generate(
            _project(), FIELDS, {"Name": "Ada", "Role": "x"}, photo_bytes=b"not a photo",
        ))
    assert storage.uploads == []


def test_failed_requests_do_not_retain_tickets(fonts):
    generator = CardGenerator(FakeStorage(), fonts=fonts)
    values = {"Name": "Ada", "Role": "x"}
    for i in range(20):
        with pytest.raises(CardGenerationError):
            asyncio.run(generator.generate(_project(), FIELDS[1:], values, request_key=f"req-{i}"))
    assert generator._tickets == {}


def test_tickets_are_released_after_superseded_and_successful_renders(png_bytes, fonts):
    storage = FakeStorage({"/media/templates/bg.png": png_bytes()})
    generator = CardGenerator(storage, fonts=fonts)
    values = {"Name": "Ada", "Role": "x"}

    async def run_both():
        return await asyncio.gather(
            generator.generate(_project(), FIELDS[1:], values, request_key="client-1"),
            generator.generate(_project(), FIELDS[1:], values, request_key="client-1"),
            return_exceptions=True,
        )

    asyncio.run(run_both())
    assert generator._tickets == {}
