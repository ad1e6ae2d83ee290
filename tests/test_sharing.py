"""Tests for referral links and share payloads."""

import asyncio
from unittest.mock import MagicMock

import pytest

from sharing import (
    CopyAcknowledgement, ShareChannel, ShareMode, build_referral_link, build_share_payload,
    email_body, referral_whatsapp_url, share_message,
)

ORIGIN = "https://app.example"
ENCODED_LINK = "https%3A%2F%2Fapp.example%2Fregister%3Fref%3DDOC123"


def test_referral_link():
    assert build_referral_link(ORIGIN, "DOC123") == "https://app.example/register?ref=DOC123"
    assert build_referral_link(ORIGIN + "/", "DOC123") == "https://app.example/register?ref=DOC123"


def test_share_message_modes():
    link = build_referral_link(ORIGIN, "DOC123")

    assert link in share_message("DOC123", link, ShareMode.LINK, brand="Neutrion Diet")
    code_text = share_message("DOC123", link, ShareMode.CODE, brand="Neutrion Diet")
    assert "DOC123" in code_text
    assert link not in code_text


def test_whatsapp_payload():
    payload = build_share_payload(ShareChannel.WHATSAPP, "DOC123", origin=ORIGIN, brand="Neutrion Diet")

    assert payload.url.startswith("https://wa.me/?text=")
    assert ENCODED_LINK in payload.url


def test_email_payload():
    payload = build_share_payload(
        ShareChannel.EMAIL, "DOC123", origin=ORIGIN, display_name="Dr. Smith", brand="Neutrion Diet",
    )

    assert payload.subject == "Join Neutrion Diet - My Referral"
    assert payload.url.startswith("mailto:?subject=Join%20Neutrion%20Diet")
    assert payload.text.endswith("Dr. Smith")


def test_link_only_channels():
    facebook = build_share_payload(ShareChannel.FACEBOOK, "DOC123", origin=ORIGIN)
    linkedin = build_share_payload(ShareChannel.LINKEDIN, "DOC123", origin=ORIGIN)

    assert facebook.url == f"https://www.facebook.com/sharer/sharer.php?u={ENCODED_LINK}"
    assert linkedin.url == f"https://www.linkedin.com/sharing/share-offsite/?url={ENCODED_LINK}"


def test_telegram_payload():
    payload = build_share_payload(ShareChannel.TELEGRAM, "DOC123", origin=ORIGIN)

    assert payload.url.startswith(f"https://t.me/share/url?url={ENCODED_LINK}&text=")


def test_copy_payload():
    assert build_share_payload(ShareChannel.COPY, "DOC123", origin=ORIGIN).text == \
        "https://app.example/register?ref=DOC123"
    assert build_share_payload(ShareChannel.COPY, "DOC123", origin=ORIGIN, mode=ShareMode.CODE).text == "DOC123"


def test_email_body_code_mode():
    body = email_body("DOC123", "unused", ShareMode.CODE, brand="Neutrion Diet")

    assert "referral code" in body
    assert "DOC123" in body


def test_referral_whatsapp_url():
    url = referral_whatsapp_url("+1 (555) 123-4567", "Ann")

    assert url.startswith("https://wa.me/15551234567?text=Hi%20Ann")
    assert referral_whatsapp_url(None, "Ann") is None


class TestCopyAcknowledgement:

    @pytest.mark.asyncio
    async def test_clears_after_duration(self):
        on_clear = MagicMock()
        ack = CopyAcknowledgement(duration=0.01, on_clear=on_clear)

        ack.acknowledge("code")
        assert ack.is_active
        assert ack.copied == "code"

        await asyncio.sleep(0.05)

        assert not ack.is_active
        on_clear.assert_called_once()

    @pytest.mark.asyncio
    async def test_second_copy_restarts_timer(self):
        on_clear = MagicMock()
        ack = CopyAcknowledgement(duration=0.1, on_clear=on_clear)

        ack.acknowledge("link")
        await asyncio.sleep(0.06)
        ack.acknowledge("code")
        await asyncio.sleep(0.06)

        assert ack.copied == "code"
        on_clear.assert_not_called()

        await asyncio.sleep(0.1)
        on_clear.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel(self):
        on_clear = MagicMock()
        ack = CopyAcknowledgement(duration=0.01, on_clear=on_clear)

        ack.acknowledge()
        ack.cancel()
        await asyncio.sleep(0.03)

        assert not ack.is_active
        on_clear.assert_not_called()
