"""
Mail delivery.

Renders ``templates/email/<name>.html`` and ``<name>.txt`` with Jinja2 and
sends them over SMTP. Delivery problems surface as MailDeliveryFailure so
callers can tell them apart from account errors.
"""

from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from time import monotonic
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from errors import MailDeliveryFailure

logger = logging.getLogger(__name__)

EMAIL_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"


class Mailer(ABC):
    def __init__(self, template_dir: Path = EMAIL_TEMPLATE_DIR) -> None:
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def render(self, template_name: str, template_data: Dict[str, Any]) -> Tuple[str, str]:
        try:
            html = self.env.get_template(f"{template_name}.html").render(**template_data)
            text = self.env.get_template(f"{template_name}.txt").render(**template_data)
        except TemplateNotFound as exc:
            raise MailDeliveryFailure(f"Missing email template: {exc.name}") from exc
        return html, text

    @abstractmethod
    def send(self, recipient: str, subject: str, template_name: str, template_data: Dict[str, Any]) -> None:
        """Deliver the rendered template; raise MailDeliveryFailure on any failure."""


class LogMailer(Mailer):
    """Writes the text body to the log instead of sending it (local development)."""

    def send(self, recipient: str, subject: str, template_name: str, template_data: Dict[str, Any]) -> None:
        _, text = self.render(template_name, template_data)
        logger.info("Mail to %s (%s):\n%s", recipient, subject, text)


class SMTPMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10,
        template_dir: Path = EMAIL_TEMPLATE_DIR,
    ) -> None:
        super().__init__(template_dir)
        self.host = host
        self.port = port
        self.sender = sender or username
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, recipient: str, subject: str, html: str, text: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = self.sender or ""
        message["To"] = recipient
        message["Subject"] = subject
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))
        return message

    def send(self, recipient: str, subject: str, template_name: str, template_data: Dict[str, Any]) -> None:
        html, text = self.render(template_name, template_data)
        message = self.build_message(recipient, subject, html, text)
        # self.timeout bounds the whole exchange, not each socket operation
        deadline = monotonic() + self.timeout
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    self._shrink_timeout(server, deadline)
                    server.starttls()
                if self.username and self.password:
                    self._shrink_timeout(server, deadline)
                    server.login(self.username, self.password)
                self._shrink_timeout(server, deadline)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP error sending %r to %s: %s", template_name, recipient, exc)
            raise MailDeliveryFailure() from exc
        logger.info("Email %r sent to %s", template_name, recipient)

    @staticmethod
    def _shrink_timeout(server: smtplib.SMTP, deadline: float) -> None:
        remaining = deadline - monotonic()
        if remaining <= 0:
            raise TimeoutError("mail delivery deadline exceeded")
        if server.sock is not None:
            server.sock.settimeout(remaining)
