"""
PIX card renderer: PNG with amount, payment code excerpt and a SIMULADO stamp.
Used as the QR image of simulated payments.
"""
import base64
import io
import os
import logging
import textwrap

from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

CARD_SIZE = (480, 480)


def _get_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Try to load a TrueType font of the requested size."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    ]
    for path in font_paths:
        if os.path.exists(path):
            try:
                return ImageFont.truetype(path, size)
            except OSError:
                continue
    try:
        return ImageFont.truetype("DejaVuSans-Bold", size)
    except OSError:
        return ImageFont.load_default()


def render_pix_card(amount_label: str, payment_code: str, stamp: str = "SIMULADO") -> bytes:
    """
    Draw the payment card.

    Args:
        amount_label: formatted price, e.g. «R$ 29,90»
        payment_code: PIX copy-and-paste payload (wrapped across lines)
        stamp: diagonal label over the card

    Returns:
        PNG bytes
    """
    width, height = CARD_SIZE
    img = Image.new("RGBA", CARD_SIZE, (255, 255, 255, 255))
    draw = ImageDraw.Draw(img)

    draw.rectangle((0, 0, width, 72), fill=(50, 188, 173, 255))
    draw.text((24, 20), "PIX", font=_get_font(32), fill=(255, 255, 255, 255))
    draw.text((24, 100), amount_label, font=_get_font(40), fill=(20, 20, 20, 255))

    code_font = _get_font(14)
    y = 180
    for line in textwrap.wrap(payment_code, width=44)[:12]:
        draw.text((24, y), line, font=code_font, fill=(90, 90, 90, 255))
        y += 20

    # Diagonal stamp on a separate layer
    stamp_layer = Image.new("RGBA", CARD_SIZE, (0, 0, 0, 0))
    stamp_draw = ImageDraw.Draw(stamp_layer)
    stamp_font = _get_font(64)
    bbox = stamp_draw.textbbox((0, 0), stamp, font=stamp_font)
    text_w, text_h = bbox[2] - bbox[0], bbox[3] - bbox[1]
    stamp_draw.text(
        ((width - text_w) // 2, (height - text_h) // 2),
        stamp,
        font=stamp_font,
        fill=(220, 40, 40, 90),
    )
    stamp_layer = stamp_layer.rotate(30, resample=Image.BICUBIC, expand=False)
    result = Image.alpha_composite(img, stamp_layer).convert("RGB")

    buf = io.BytesIO()
    result.save(buf, "PNG")
    return buf.getvalue()


def render_pix_card_data_uri(amount_label: str, payment_code: str, stamp: str = "SIMULADO") -> str:
    """Same card as a data:image/png;base64 URI."""
    png = render_pix_card(amount_label, payment_code, stamp=stamp)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def decode_data_uri(uri: str) -> bytes | None:
    """PNG bytes from a data URI produced above, None for plain URLs."""
    prefix = "data:image/png;base64,"
    if not uri or not uri.startswith(prefix):
        return None
    return base64.b64decode(uri[len(prefix):])
