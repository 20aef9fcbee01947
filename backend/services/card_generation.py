"""
Card generation flow for a single submission.

Validates submitted values against a template's fields, decides the
watermark, renders off the event loop and uploads the PNG. Rendering itself
lives in services.compositor; this module owns the I/O around it and the
rule that only the newest request per key may publish a result.
"""
import asyncio
import itertools
import logging
from typing import Dict, Iterable, List, Optional

import requests

from domain.models import Field, FieldKind, OwnerTier, Project
from services.compositor import CompositionError, decode_image, encode_png, render_card
from storage.file_storage import FileStorage, project_cards_folder

logger = logging.getLogger(__name__)

UNKNOWN_PARTICIPANT = "Unknown"
NAME_FIELD = "Name"


class SubmissionError(ValueError):
    """Submitted values are incomplete for the template."""


class CardGenerationError(RuntimeError):
    """A template, photo or upload failed; no card was produced."""


class StaleRenderError(RuntimeError):
    """A newer generation for the same request key superseded this one."""


def validate_submission(fields: Iterable[Field], values: Dict[str, str], has_photo: bool) -> None:
    """
    Check that every field can be filled.

    A photo is required when the template has any photo field; every text
    field needs a non-blank value.

    Raises:
        SubmissionError: Listing the missing field names
    """
    missing = []
    for field in fields:
        if field.kind == FieldKind.PHOTO:
            if not has_photo and field.name not in missing:
                missing.append(field.name)
        elif not str(values.get(field.name) or "").strip():
            if field.name not in missing:
                missing.append(field.name)
    if missing:
        raise SubmissionError(f"Please fill in all required fields: {', '.join(missing)}")


def requires_watermark(project: Project) -> bool:
    """Everyone except elite owners gets the watermark, including unknown tiers."""
    try:
        tier = OwnerTier(project.owner_tier)
    except ValueError:
        return True
    return tier != OwnerTier.ELITE


def participant_name_from(fields: Iterable[Field], values: Dict[str, str]) -> str:
    name = str(values.get(NAME_FIELD) or "").strip()
    if name:
        return name
    for field in fields:
        if field.kind != FieldKind.TEXT:
            continue
        value = str(values.get(field.name) or "").strip()
        if value:
            return value
    return UNKNOWN_PARTICIPANT


class CardGenerator:
    """
    Renders and publishes cards.

    Each `generate` call takes a ticket for its request key. When a newer
    call for the same key has started by the time rendering finishes, the
    older result is dropped instead of uploaded.
    """

    def __init__(self, storage: FileStorage, fonts=None, renderer=render_card):
        self.storage = storage
        self.fonts = fonts
        self.renderer = renderer
        self._tickets: Dict[str, int] = {}
        self._counter = itertools.count(1)

    def _take_ticket(self, key: str) -> int:
        ticket = next(self._counter)
        self._tickets[key] = ticket
        return ticket

    def _is_current(self, key: str, ticket: int) -> bool:
        return self._tickets.get(key) == ticket

    def _release_ticket(self, key: str, ticket: int) -> None:
        # a newer request for the key still owns its entry
        if self._is_current(key, ticket):
            del self._tickets[key]

    def _render_png(
        self,
        template_bytes: bytes,
        fields: Iterable[Field],
        values: Dict[str, str],
        photo_bytes: Optional[bytes],
        watermark: bool,
    ) -> bytes:
        template = decode_image(template_bytes, "template")
        photo = decode_image(photo_bytes, "photo") if photo_bytes else None
        card = self.renderer(template, list(fields), values, watermark, photo=photo, fonts=self.fonts)
        return encode_png(card)

    async def generate(
        self,
        project: Project,
        fields: Iterable[Field],
        values: Dict[str, str],
        photo_bytes: Optional[bytes] = None,
        request_key: Optional[str] = None,
    ) -> str:
        """
        Render a card and upload it.

        Returns:
            Public URL of the generated PNG

        Raises:
            CardGenerationError: Template, photo or upload could not be used
            StaleRenderError: A newer request for the same key superseded this one
        """
        key = request_key or project.id
        ticket = self._take_ticket(key)
        try:
            return await self._generate(project, list(fields), values, photo_bytes, key, ticket)
        finally:
            self._release_ticket(key, ticket)

    async def _generate(
        self,
        project: Project,
        fields: List[Field],
        values: Dict[str, str],
        photo_bytes: Optional[bytes],
        key: str,
        ticket: int,
    ) -> str:
        watermark = requires_watermark(project)

        if not project.template_image_url:
            logger.error("[card_generation] project %s has no template image", project.id)
            raise CardGenerationError("could not generate card")

        try:
            template_bytes = await asyncio.to_thread(self.storage.read, project.template_image_url)
            png = await asyncio.to_thread(self._render_png, template_bytes, fields, values, photo_bytes, watermark)
        except (CompositionError, OSError, ValueError, requests.RequestException) as exc:
            logger.error("[card_generation] render failed for project %s", project.id, exc_info=True)
            raise CardGenerationError("could not generate card") from exc

        if not self._is_current(key, ticket):
            logger.info("[card_generation] discarding stale render for %s (ticket %s)", key, ticket)
            raise StaleRenderError(f"superseded by a newer request for {key}")

        try:
            url = await asyncio.to_thread(self.storage.upload, png, "image/png", project_cards_folder(project.id))
        except OSError as exc:
            logger.error("[card_generation] upload failed for project %s", project.id, exc_info=True)
            raise CardGenerationError("could not generate card") from exc

        logger.info("[card_generation] generated %s for project %s (watermark=%s)", url, project.id, watermark)
        return url
