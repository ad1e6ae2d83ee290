"""
Тексты и ссылки для отправки реферального кода в разные каналы.
Только форматирование строк, без сетевых запросов.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from urllib.parse import quote

import config


class ShareChannel(str, Enum):
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    TELEGRAM = "telegram"
    COPY = "copy"


class ShareMode(str, Enum):
    LINK = "link"
    CODE = "code"


@dataclass(frozen=True)
class SharePayload:
    channel: ShareChannel
    text: str
    url: Optional[str] = None
    subject: Optional[str] = None


def _encode(value: str) -> str:
    # Как encodeURIComponent в браузере
    return quote(value, safe="-_.!~*'()")


def build_referral_link(origin: str, referral_code: str) -> str:
    return f"{origin.rstrip('/')}/register?ref={referral_code}"


def share_message(referral_code: str,
                  referral_link: str,
                  mode: ShareMode = ShareMode.LINK,
                  brand: Optional[str] = None,
                  short: bool = False) -> str:
    brand = brand or config.config.BRAND_NAME
    if ShareMode(mode) == ShareMode.CODE:
        return f"Join me at {brand}! Use my referral code: {referral_code}"
    if short:
        return f"Join me at {brand}! Use my referral link: {referral_link}"
    return f"Join me at {brand}! Use my referral link to register: {referral_link}"


def email_subject(brand: Optional[str] = None) -> str:
    return f"Join {brand or config.config.BRAND_NAME} - My Referral"


def email_body(referral_code: str,
               referral_link: str,
               mode: ShareMode = ShareMode.LINK,
               display_name: Optional[str] = None,
               brand: Optional[str] = None) -> str:
    brand = brand or config.config.BRAND_NAME
    if ShareMode(mode) == ShareMode.CODE:
        what, value = "referral code", referral_code
    else:
        what, value = "referral link", referral_link

    body = (
        f"Hi,\n\nI've been using {brand} and I think you'll love it! "
        f"Use my {what} to register:\n\n{value}\n\nSee you there!"
    )
    if display_name:
        body += f"\n{display_name}"
    return body


def build_share_payload(channel: ShareChannel,
                        referral_code: str,
                        origin: Optional[str] = None,
                        display_name: Optional[str] = None,
                        mode: ShareMode = ShareMode.LINK,
                        brand: Optional[str] = None) -> SharePayload:
    """Готовый текст/URL для выбранного канала"""
    channel = ShareChannel(channel)
    link = build_referral_link(origin or config.config.APP_ORIGIN, referral_code)
    text = share_message(referral_code, link, mode, brand)

    if channel == ShareChannel.WHATSAPP:
        return SharePayload(channel, text, f"https://wa.me/?text={_encode(text)}")

    if channel == ShareChannel.EMAIL:
        subject = email_subject(brand)
        body = email_body(referral_code, link, mode, display_name, brand)
        url = f"mailto:?subject={_encode(subject)}&body={_encode(body)}"
        return SharePayload(channel, body, url, subject)

    if channel == ShareChannel.TWITTER:
        short_text = share_message(referral_code, link, mode, brand, short=True)
        return SharePayload(channel, short_text, f"https://twitter.com/intent/tweet?text={_encode(short_text)}")

    if channel == ShareChannel.FACEBOOK:
        return SharePayload(channel, link, f"https://www.facebook.com/sharer/sharer.php?u={_encode(link)}")

    if channel == ShareChannel.LINKEDIN:
        return SharePayload(channel, link, f"https://www.linkedin.com/sharing/share-offsite/?url={_encode(link)}")

    if channel == ShareChannel.TELEGRAM:
        return SharePayload(channel, text, f"https://t.me/share/url?url={_encode(link)}&text={_encode(text)}")

    # COPY: сам код или ссылка
    value = referral_code if ShareMode(mode) == ShareMode.CODE else link
    return SharePayload(channel, value)


def referral_whatsapp_url(phone: Optional[str], name: str, brand: Optional[str] = None) -> Optional[str]:
    """Сообщение конкретному приглашенному человеку"""
    if not phone:
        return None
    message = (
        f"Hi {name}, you've been referred to our diet consultation service. "
        f"Join us to get personalized diet plans!"
    )
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"https://wa.me/{digits}?text={_encode(message)}"


class CopyAcknowledgement:
    """
    Отметка "Скопировано", которая сама гаснет через duration секунд.
    Повторное копирование перезапускает таймер.
    """

    def __init__(self, duration: Optional[float] = None, on_clear: Optional[Callable[[], None]] = None):
        self.duration = config.config.COPY_ACK_SECONDS if duration is None else duration
        self.on_clear = on_clear
        self.copied: Optional[str] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_active(self) -> bool:
        return self.copied is not None

    def acknowledge(self, what: str = ShareMode.LINK.value) -> None:
        self.cancel()
        self.copied = what
        self._handle = asyncio.get_running_loop().call_later(self.duration, self._clear)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.copied = None

    def _clear(self) -> None:
        self._handle = None
        self.copied = None
        if self.on_clear is not None:
            self.on_clear()
