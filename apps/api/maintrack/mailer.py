from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from maintrack.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
  to: str
  subject: str
  body: str


class Mailer(Protocol):
  async def send(self, msg: MailMessage) -> None: ...


class LogMailer:
  """Writes outgoing mail to the log; used in development and tests."""

  def __init__(self) -> None:
    self.outbox: list[MailMessage] = []

  async def send(self, msg: MailMessage) -> None:
    self.outbox.append(msg)
    logger.info("mail to=%s subject=%r\n%s", msg.to, msg.subject, msg.body)


class SmtpMailer:
  def __init__(
    self,
    *,
    host: str,
    port: int,
    from_addr: str,
    username: str | None = None,
    password: str | None = None,
    starttls: bool = True,
  ) -> None:
    self.host = host
    self.port = port
    self.from_addr = from_addr
    self.username = username
    self.password = password
    self.starttls = starttls

  async def send(self, msg: MailMessage) -> None:
    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = msg.subject
      m["From"] = self.from_addr
      m["To"] = msg.to
      m.set_content(msg.body)
      with smtplib.SMTP(host=self.host, port=self.port, timeout=15) as s:
        s.ehlo()
        if self.starttls:
          s.starttls()
          s.ehlo()
        if self.username and self.password:
          s.login(self.username, self.password)
        s.send_message(m)

    await asyncio.to_thread(_send_sync)


_mailer: Mailer | None = None


def get_mailer() -> Mailer:
  global _mailer
  if _mailer is None:
    if settings.mailer == "smtp":
      if not settings.smtp_host or not settings.smtp_from:
        raise RuntimeError("MAILER=smtp requires SMTP_HOST and SMTP_FROM")
      _mailer = SmtpMailer(
        host=settings.smtp_host,
        port=int(settings.smtp_port),
        from_addr=settings.smtp_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        starttls=bool(settings.smtp_starttls),
      )
    else:
      _mailer = LogMailer()
  return _mailer


def set_mailer(mailer: Mailer | None) -> None:
  global _mailer
  _mailer = mailer
