"""
Newsletter rendering and sending via SMTP.

Builds the HTML newsletter from summaries and correlation records and
sends it using the configured SMTP server.
"""

import html
import logging
import re
import smtplib
import ssl
import time
from datetime import date, datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Callable, Optional, Sequence

from .config import Config
from .correlate import format_percentage
from .errors import ClientError, NewsletterError, TransientError
from .models import CoinSummary, CorrelationRecord, SendResult
from .retry import RetryPolicy


logger = logging.getLogger(__name__)


UP_COLOR = "#22c55e"
DOWN_COLOR = "#ef4444"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
            line-height: 1.6;
            color: #e5e7eb;
            max-width: 600px;
            margin: 0 auto;
            padding: 20px;
            background-color: #0f172a;
        }}
        .container {{
            background-color: #111827;
            border-radius: 8px;
            padding: 30px;
        }}
        .header {{
            border-bottom: 3px solid #f59e0b;
            padding-bottom: 15px;
            margin-bottom: 25px;
        }}
        .header h1 {{
            margin: 0;
            color: #f59e0b;
            font-size: 24px;
            font-weight: 700;
        }}
        .header .date {{
            color: #9ca3af;
            font-size: 14px;
            margin-top: 5px;
        }}
        .coin {{
            margin-bottom: 25px;
            padding-bottom: 20px;
            border-bottom: 1px solid #1f2937;
        }}
        .coin:last-child {{
            border-bottom: none;
            margin-bottom: 0;
            padding-bottom: 0;
        }}
        .coin-name {{
            font-size: 18px;
            font-weight: 600;
            margin: 0 0 4px 0;
        }}
        .price {{
            font-size: 14px;
            margin-bottom: 12px;
        }}
        .summary {{
            font-size: 14px;
            color: #d1d5db;
        }}
        .top-news {{
            font-size: 12px;
            color: #9ca3af;
            margin-top: 8px;
        }}
        .top-news a {{
            color: #60a5fa;
            text-decoration: none;
        }}
        .footer {{
            margin-top: 30px;
            padding-top: 20px;
            border-top: 1px solid #1f2937;
            font-size: 12px;
            color: #6b7280;
            text-align: center;
        }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{title}</h1>
            <div class="date">{formatted_date} &bull; {coin_count} coins</div>
        </div>

        {coins_html}

        <div class="footer">
            Generated {generated_at}<br>
            This newsletter explains past price movements only. It is not financial advice.
        </div>
    </div>
</body>
</html>
"""

COIN_TEMPLATE = """
<div class="coin">
    <h2 class="coin-name">{name} ({symbol})</h2>
    <div class="price">${price} <span style="color: {color}; font-weight: 600;">{change}</span></div>
    <div class="summary"><p>{summary}</p></div>
    {top_news_html}
</div>
"""

TOP_NEWS_TEMPLATE = """<div class="top-news">Top story: <a href="{url}">{title}</a> ({source})</div>"""


def format_price(price: Optional[float]) -> str:
    """Format price with commas and 2 decimal places."""
    if price is None:
        return "0.00"
    return f"{price:,.2f}"


def _render_coin(summary: CoinSummary, record: CorrelationRecord) -> str:
    """Render one coin card."""
    color = UP_COLOR if record.direction == "up" else DOWN_COLOR

    top_news_html = ""
    if record.relevant_news:
        news = record.relevant_news[0]
        top_news_html = TOP_NEWS_TEMPLATE.format(
            url=html.escape(news.url or "#", quote=True),
            title=html.escape(news.title),
            source=html.escape(news.source),
        )

    return COIN_TEMPLATE.format(
        name=html.escape(record.name),
        symbol=html.escape(record.symbol),
        price=format_price(record.current_price),
        color=color,
        change=format_percentage(record.price_change_percentage_24h),
        summary=html.escape(summary.summary),
        top_news_html=top_news_html,
    )


def build_newsletter_html(
    summaries: Sequence[CoinSummary],
    records: Sequence[CorrelationRecord],
    newsletter_date: Optional[date] = None,
    title: str = "Crypto Daily Newsletter",
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Build the newsletter HTML, one card per summarized coin.

    Summaries without a matching correlation record (by symbol) are skipped.

    Args:
        summaries: LLM summaries, in display order.
        records: Correlation records for the same run.
        newsletter_date: Date for the header (defaults to today).
        title: Newsletter title.
        generated_at: Timestamp for the footer (defaults to now, UTC).

    Returns:
        Complete HTML email string.
    """
    newsletter_date = newsletter_date or date.today()
    generated_at = generated_at or datetime.now(timezone.utc)

    by_symbol = {record.symbol.upper(): record for record in records}

    coin_parts = []
    for summary in summaries:
        record = by_symbol.get(summary.symbol.upper())
        if record is None:
            logger.warning(f"No correlation data found for {summary.symbol}")
            continue
        coin_parts.append(_render_coin(summary, record))

    logger.info(f"Compiled newsletter for {len(coin_parts)} coins")

    return EMAIL_TEMPLATE.format(
        title=html.escape(title),
        formatted_date=newsletter_date.strftime("%A, %B %d, %Y"),
        coin_count=len(coin_parts),
        coins_html="\n".join(coin_parts),
        generated_at=generated_at.strftime("%b %d, %Y %H:%M %Z"),
    )


def generate_subject(title: str, send_date: Optional[date] = None) -> str:
    """Subject line with the current date, e.g. 'Crypto Daily Newsletter - January 15, 2024'."""
    send_date = send_date or date.today()
    return f"{title} - {send_date.strftime('%B')} {send_date.day}, {send_date.year}"


def parse_recipients(recipients: Sequence[str]) -> list[str]:
    """
    Validate recipient addresses.

    Raises:
        ClientError: If the list is empty or an address is malformed.
    """
    cleaned = [r.strip() for r in recipients if r and r.strip()]
    if not cleaned:
        raise ClientError("No valid recipients configured")

    for address in cleaned:
        if not EMAIL_PATTERN.match(address):
            raise ClientError(f"Invalid email address: {address}")

    return cleaned


def classify_smtp_error(error: OSError) -> NewsletterError:
    """
    Map an smtplib/socket failure to ClientError or TransientError.

    Authentication and recipient/sender rejections and permanent (5xx)
    replies are client errors, as are a missing STARTTLS extension and a
    failed certificate check. Disconnects, connection failures, temporary
    (4xx) replies and other socket errors are transient: they happen
    before the server accepts the message.
    """
    if isinstance(error, smtplib.SMTPAuthenticationError):
        return ClientError(f"SMTP authentication failed: {error}", status=error.smtp_code)
    if isinstance(error, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return ClientError(f"SMTP server refused the message: {error}")
    if isinstance(error, smtplib.SMTPResponseException):
        if 400 <= error.smtp_code < 500:
            return TransientError(f"SMTP temporary failure: {error}", status=error.smtp_code)
        return ClientError(f"SMTP permanent failure: {error}", status=error.smtp_code)
    if isinstance(error, (smtplib.SMTPNotSupportedError, ssl.SSLCertVerificationError)):
        return ClientError(f"SMTP TLS setup failed: {error}")
    return TransientError(f"SMTP connection failed: {error}")


def _close_quietly(server: smtplib.SMTP) -> None:
    """QUIT the session; a failure here must not trigger a resend."""
    try:
        server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.debug(f"SMTP QUIT failed, closing socket: {e}")
        server.close()


class SMTPMailer:
    """Mailer that sends the newsletter through an SMTP server."""

    def __init__(
        self,
        config: Config,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.max_retries,
            base_delay_ms=config.smtp_retry_delay_ms,
        )
        self._clock = clock

    def send(self, html_body: str) -> SendResult:
        """
        Send the newsletter to all configured recipients.

        Args:
            html_body: Compiled newsletter HTML.

        Returns:
            SendResult describing the delivery (or the dry run).

        Raises:
            ClientError: On empty content, bad recipients or rejected credentials.
            TransientError: When retries are exhausted.
        """
        if not isinstance(html_body, str) or not html_body.strip():
            raise ClientError("html_body must be a non-empty string")

        recipients = parse_recipients(self.config.to_emails)
        subject = generate_subject(self.config.newsletter_title, self._clock().date())

        if self.config.dry_run:
            return self._dry_run(html_body, recipients, subject)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.from_email
        msg["To"] = ", ".join(recipients)
        msg["Message-ID"] = make_msgid()
        msg.attach(MIMEText(html_body, "html"))

        self.retry_policy.call(
            lambda: self._perform_send(msg, recipients),
            description="SMTP send",
        )

        logger.info(f"Email sent to {len(recipients)} recipient(s): {msg['Message-ID']}")
        return SendResult(
            success=True,
            message_id=msg["Message-ID"],
            recipients=recipients,
            sent_at=self._clock(),
        )

    def _perform_send(self, msg: MIMEMultipart, recipients: list[str]) -> None:
        config = self.config
        logger.info(f"Connecting to SMTP server {config.smtp_host}:{config.smtp_port}...")

        try:
            if config.smtp_port == 465:
                server = smtplib.SMTP_SSL(config.smtp_host, config.smtp_port, timeout=config.smtp_timeout)
            else:
                server = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=config.smtp_timeout)
        except (smtplib.SMTPException, OSError) as e:
            raise classify_smtp_error(e)

        try:
            if config.smtp_port != 465:
                server.starttls()
            server.login(config.smtp_user, config.smtp_password)
            server.sendmail(config.from_email, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise classify_smtp_error(e)
        finally:
            _close_quietly(server)

    def _dry_run(self, html_body: str, recipients: list[str], subject: str) -> SendResult:
        """Log what would be sent without connecting."""
        logger.info("DRY_RUN mode enabled - email will not be sent")
        logger.info(f"From: {self.config.from_email}")
        logger.info(f"To: {', '.join(recipients)}")
        logger.info(f"Subject: {subject}")
        logger.info(f"HTML Length: {len(html_body)} characters")

        return SendResult(
            success=True,
            message_id=f"dry-run-{int(time.time() * 1000)}",
            recipients=recipients,
            sent_at=self._clock(),
            dry_run=True,
        )
