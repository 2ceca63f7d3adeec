import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Dict, Any

from config import settings

logger = logging.getLogger("MAILER")

STATUS_MESSAGES = {
    "accepted": ("Order Accepted", "The seller has accepted your order and is preparing your items."),
    "rejected": ("Order Rejected", "Unfortunately, the seller couldn't fulfill your order. Your payment will be refunded."),
    "cancelled": ("Order Cancelled", "Your order has been cancelled."),
    "completed": ("Order Completed", "Your order has been delivered successfully! Enjoy your food!"),
}


def send_email(to: str, subject: str, html: str) -> bool:
    """Sends one HTML mail over SMTP. Never raises; returns False on any failure."""
    if not settings.SMTP_HOST:
        logger.warning(f"SMTP not configured, skipping mail to {to}")
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"Midnight Cravings <{settings.EMAIL_FROM}>"
    message["To"] = to
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as server:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM, to, message.as_string())
        logger.info(f"Mail sent to {to}: {subject}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send mail to {to}: {e}")
        return False


def send_order_notification_email(seller_email: str, seller_name: str, details: Dict[str, Any]) -> bool:
    rows = "".join(
        f"<tr><td>{escape(str(item['product_name']))}</td><td align='center'>{item['quantity']}</td>"
        f"<td align='right'>&#8377;{item['price']}</td></tr>"
        for item in details["items"]
    )
    html = f"""
    <html><body>
        <p>Hi <strong>{escape(seller_name)}</strong>,</p>
        <p>You've received a new order. Please prepare the items and wait for customer confirmation.</p>
        <p><strong>Customer:</strong> {escape(details.get('buyer_name') or 'Guest')}<br/>
           <strong>Hostel:</strong> {escape(details['delivery_hostel'])}<br/>
           <strong>Room:</strong> {escape(details['delivery_room'])}</p>
        <table border="1" style="width:100%;border-collapse: collapse;">
            <tr><th>Product</th><th>Quantity</th><th>Price</th></tr>
            {rows}
        </table>
        <p><strong>Total Amount:</strong> &#8377;{details['total_amount']}</p>
        <p>Log in to your <a href="{settings.FRONTEND_URL}">seller dashboard</a> to accept or reject this order.</p>
        <p>Regards,<br>Midnight Cravings</p>
    </body></html>
    """
    return send_email(seller_email, "New Order Received - Midnight Cravings", html)


def send_order_status_email(buyer_email: str, buyer_name: str, order_status: str, order_id: str) -> bool:
    title, text = STATUS_MESSAGES.get(order_status, STATUS_MESSAGES["accepted"])
    html = f"""
    <html><body>
        <p>Hi <strong>{escape(buyer_name)}</strong>,</p>
        <p>{text}</p>
        <p>Order reference: {order_id}</p>
        <a href="{settings.FRONTEND_URL}">View Order Details</a>
        <p>Regards,<br>Midnight Cravings</p>
    </body></html>
    """
    return send_email(buyer_email, f"{title} - Midnight Cravings", html)
