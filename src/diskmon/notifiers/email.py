"""SMTP e-mail notification handler."""

import html
import logging
import smtplib
import socket
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid

from diskmon.config import TransportConfig, parse_address
from diskmon.models import DiskReport
from diskmon.notifiers.base import (
    BaseNotifier,
    DispatchError,
    FatalDispatchError,
    TransientDispatchError,
)

logger = logging.getLogger(__name__)


def classify_smtp_error(error: Exception) -> DispatchError:
    """Map an smtplib/socket/ssl failure to a transient or fatal dispatch error."""
    if isinstance(error, DispatchError):
        return error
    if isinstance(error, smtplib.SMTPAuthenticationError):
        return FatalDispatchError(f"SMTP authentication failed: {error.smtp_code} {_reply(error)}")
    if isinstance(error, ssl.SSLCertVerificationError):
        return FatalDispatchError(f"TLS certificate validation failed: {getattr(error, 'verify_message', None) or error}")
    if isinstance(error, smtplib.SMTPNotSupportedError):
        return FatalDispatchError(f"SMTP server does not support required extension: {error}")
    if isinstance(error, smtplib.SMTPRecipientsRefused):
        codes = [code for code, _ in error.recipients.values()]
        reason = f"recipients refused: {', '.join(error.recipients)}"
        if codes and all(400 <= code < 500 for code in codes):
            return TransientDispatchError(reason)
        return FatalDispatchError(reason)
    if isinstance(error, smtplib.SMTPResponseException):
        reason = f"SMTP error {error.smtp_code}: {_reply(error)}"
        if 400 <= error.smtp_code < 500:
            return TransientDispatchError(reason)
        return FatalDispatchError(reason)
    if isinstance(error, (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError)):
        return TransientDispatchError(f"SMTP connection lost: {error}")
    if isinstance(error, ssl.SSLError):
        return TransientDispatchError(f"TLS error: {error}")
    if isinstance(error, (socket.timeout, TimeoutError, ConnectionError)):
        return TransientDispatchError(f"SMTP connection failed: {error}")
    if isinstance(error, socket.gaierror):
        return TransientDispatchError(f"Cannot resolve SMTP server: {error}")
    if isinstance(error, (ValueError, smtplib.SMTPException)):
        return FatalDispatchError(f"SMTP error: {error}")
    if isinstance(error, OSError):
        return TransientDispatchError(f"SMTP network error: {error}")
    return FatalDispatchError(f"Unexpected delivery error: {error!r}")


def _reply(error: smtplib.SMTPResponseException) -> str:
    message = error.smtp_error
    if isinstance(message, bytes):
        message = message.decode(errors="replace")
    return str(message).strip()


def _check_address(value: str, role: str) -> tuple[str, str]:
    parsed = parse_address(value)
    if parsed is None:
        raise FatalDispatchError(f"Invalid {role} email address '{value.strip()}'")
    return parsed


class EmailNotifier(BaseNotifier):
    """Send the disk report by SMTP.

    ``ssl`` wraps the connection in TLS, ``starttls`` upgrades it and refuses
    to continue in plaintext, ``none`` sends unencrypted. Certificates are
    always verified against the system trust store.
    """

    def __init__(self, transport: TransportConfig, ssl_context: ssl.SSLContext | None = None) -> None:
        """Initialize e-mail notifier.

        Args:
            transport: Resolved SMTP settings and credentials.
            ssl_context: Override for tests; defaults to a verifying context.
        """
        self.transport = transport
        self.ssl_context = ssl_context or ssl.create_default_context()

    def build_message(self, report: DiskReport) -> EmailMessage:
        """Build the multipart (text + HTML) message for a report."""
        t = self.transport
        sender = _check_address(t.email_from, "sender")
        recipients = [_check_address(addr, "recipient") for addr in t.email_to]
        if not recipients:
            raise FatalDispatchError("No recipient email address configured")

        text = self.format_report(report)
        msg = EmailMessage()
        msg["Subject"] = report.subject
        msg["From"] = formataddr(sender)
        msg["To"] = ", ".join(formataddr(r) for r in recipients)
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=sender[1].rpartition("@")[2])
        msg.set_content(text)
        msg.add_alternative(
            '<html><body><pre style="font-family: monospace;">\n'
            f"{html.escape(text)}\n"
            "</pre></body></html>",
            subtype="html",
        )
        return msg

    def send_report(self, report: DiskReport) -> None:
        """Deliver the report in a single SMTP session."""
        msg = self.build_message(report)
        t = self.transport

        try:
            with self._connect() as smtp:
                if t.security == "starttls":
                    smtp.ehlo()
                    # SMTPNotSupportedError when the server cannot upgrade: never fall back to plaintext.
                    smtp.starttls(context=self.ssl_context)
                    smtp.ehlo()
                if t.use_auth:
                    smtp.login(t.username, t.password)
                smtp.send_message(msg)
        except DispatchError:
            raise
        except Exception as e:
            raise classify_smtp_error(e) from e

        logger.info(f"Report e-mail sent to {msg['To']} via {t.server}:{t.port}")

    def _connect(self) -> smtplib.SMTP:
        t = self.transport
        logger.debug(f"Connecting to {t.server}:{t.port} (security: {t.security})")
        if t.security == "ssl":
            return smtplib.SMTP_SSL(t.server, t.port, timeout=t.timeout, context=self.ssl_context)
        return smtplib.SMTP(t.server, t.port, timeout=t.timeout)
