"""Transactional email rendered in-process and delivered through Resend.

When `RESEND_API_KEY` is not configured nothing is sent, every send
method returns False and `enabled` is False; callers check `enabled` to
fall back to "dev delivery" (echoing the verification code in the API
response). User-supplied names are HTML-escaped in the HTML parts.
"""

from __future__ import annotations

import html
import logging
from typing import Optional

import requests

from ..config import settings
from .helpers import format_currency

RESEND_URL = "https://api.resend.com/emails"
logger = logging.getLogger("auctionhub.email")


def _layout(title: str, accent: str, body_html: str) -> str:
    return f"""
    <div style='max-width:600px;margin:0 auto;font-family:Arial,sans-serif;'>
      <div style='background:{accent};padding:30px;text-align:center;'>
        <h1 style='color:white;margin:0;font-size:28px;'>AuctionHub</h1>
        <p style='color:white;margin:10px 0 0 0;opacity:0.9;'>{title}</p>
      </div>
      <div style='padding:40px 30px;background:#f9f9f9;color:#333;line-height:1.6;'>
        {body_html}
      </div>
      <div style='background:#333;padding:20px;text-align:center;color:white;font-size:12px;'>
        This email was sent from AuctionHub.
      </div>
    </div>
    """


class EmailService:
    """Render and send the marketplace's notification emails."""

    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None, timeout: float = 10):
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, to_email: str, subject: str, text: str, html_body: str) -> bool:
        """Post one message to the provider. Returns True on a 2xx answer."""
        if not self.enabled:
            logger.info("email delivery disabled; skipped %r to %s", subject, to_email)
            return False
        try:
            resp = requests.post(
                RESEND_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "from": self.sender,
                    "to": [to_email],
                    "subject": subject,
                    "text": text,
                    "html": html_body,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("email delivery failed subject=%r to=%s error=%s", subject, to_email, exc)
            return False
        if resp.status_code not in (200, 201, 202):
            logger.warning("email provider rejected subject=%r to=%s status=%s", subject, to_email, resp.status_code)
            return False
        return True

    def send_verification(self, to_email: str, name: str, code: str, ttl_minutes: int) -> bool:
        text = (
            f"Hi {name},\n\nYour AuctionHub verification code is: {code}\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you didn't create an account, you can ignore this email."
        )
        page = _layout("Welcome to the marketplace!", "#de6b22", f"""
            <h2>Hi {html.escape(name)}!</h2>
            <p>Use this code in the app to verify your account:</p>
            <p style='font-size:36px;font-weight:bold;color:#de6b22;letter-spacing:8px;font-family:monospace;'>{html.escape(code)}</p>
            <p>The code expires in <strong>{ttl_minutes} minutes</strong>.</p>
        """)
        return self.send(to_email, "Verify your AuctionHub account", text, page)

    def send_bid_notification(self, to_email: str, name: str, item_name: str, amount: float, outbid: bool = False) -> bool:
        if outbid:
            subject = "You've been outbid on AuctionHub"
            line = "Someone placed a higher bid of {amount} on {item}."
        else:
            subject = "Bid confirmation - AuctionHub"
            line = "Your bid of {amount} on {item} is now the highest bid."
        text = line.format(amount=format_currency(amount), item=item_name)
        page = _layout("Bid Update" if outbid else "Bid Confirmation", "#ff5722" if outbid else "#4caf50",
                       f"<h2>Hi {html.escape(name)}!</h2>"
                       f"<p>{line.format(amount=format_currency(amount), item=html.escape(item_name))}</p>")
        return self.send(to_email, subject, f"Hi {name},\n\n{text}", page)

    def send_ending_soon(self, to_email: str, name: str, item_name: str, time_left_text: str) -> bool:
        line = "The auction for {item} is ending soon ({left})."
        page = _layout("Auction ending soon", "#ff9800",
                       f"<h2>Hi {html.escape(name)}!</h2>"
                       f"<p>{line.format(item=html.escape(item_name), left=html.escape(time_left_text))}</p>")
        text = line.format(item=item_name, left=time_left_text)
        return self.send(to_email, f"Ending soon: {item_name}", f"Hi {name},\n\n{text}", page)

    def send_auction_won(self, to_email: str, name: str, item_name: str, winning_bid: float) -> bool:
        line = "You won {item} with a bid of {amount}. The seller will be in touch."
        page = _layout("Congratulations!", "#4caf50",
                       f"<h2>Hi {html.escape(name)}!</h2>"
                       f"<p>{line.format(item=html.escape(item_name), amount=format_currency(winning_bid))}</p>")
        text = line.format(item=item_name, amount=format_currency(winning_bid))
        return self.send(to_email, f"You won: {item_name}", f"Hi {name},\n\n{text}", page)
