import logging
import os
from decimal import Decimal

import qrcode
from PIL import Image, ImageDraw, ImageFont

from settings import CURRENCY_SYMBOL, RECEIPTS_DIR, STORE_ADDRESS, STORE_NAME, TAX_RATE

logger = logging.getLogger(__name__)


def _percent(rate):
    return f"{(Decimal(rate) * 100).normalize():f}"


def _money(value):
    return f"{CURRENCY_SYMBOL}{value:,.2f}"


def ticket_text(sale, tax_rate=TAX_RATE, width=32):
    """Plain-text ticket for a completed sale, suitable for a narrow printer."""
    rule = "=" * width
    sep = "-" * width
    out = [rule, STORE_NAME.center(width), rule,
           f"Ticket #{sale.id}",
           f"Date: {sale.timestamp.strftime('%Y-%m-%d')}",
           f"Time: {sale.timestamp.strftime('%H:%M:%S')}",
           f"Customer: {sale.customer_ref}" if sale.customer_ref else "Walk-in customer",
           "", sep, "ITEMS:", sep]
    for line in sale.lines:
        out.append(line.name)
        out.append(f"Qty: {line.quantity} x {_money(line.unit_price_at_sale)}")
        out.append(f"Line total: {_money(line.line_total)}")
        out.append("")
    out += [sep, "TOTALS:", sep,
            f"Subtotal: {_money(sale.subtotal)}",
            f"Tax ({_percent(tax_rate)}%): {_money(sale.tax)}"]
    if sale.discount:
        out.append(f"Discount: -{_money(sale.discount)}")
    out.append(f"TOTAL: {_money(sale.total)}")
    out.append("")
    out.append(f"Payment method: {sale.payment_method.label}")
    if sale.cash_given is not None:
        out.append(f"Paid: {_money(sale.cash_given)}")
        out.append(f"Change: {_money(sale.change)}")
    out += ["", rule, "Thank you for your purchase!".center(width), "Come back soon".center(width), rule]
    return "\n".join(out)


class ReceiptGenerator:
    @staticmethod
    def _load_font(size):
        # Try common system fonts, fallback to default
        for f in ("arial.ttf", "DejaVuSans.ttf", "LiberationSans-Regular.ttf"):
            try:
                return ImageFont.truetype(f, size)
            except OSError:
                continue
        return ImageFont.load_default()

    @staticmethod
    def _text_size(draw, text, font):
        bbox = draw.textbbox((0, 0), text, font=font)
        return bbox[2] - bbox[0], bbox[3] - bbox[1]

    @staticmethod
    def _wrap(draw, text, font, max_w):
        words = (text or '').split()
        if not words:
            return ['']
        lines = []
        cur = words[0]
        for w in words[1:]:
            if ReceiptGenerator._text_size(draw, cur + ' ' + w, font)[0] <= max_w:
                cur = cur + ' ' + w
            else:
                lines.append(cur)
                cur = w
        lines.append(cur)
        return lines

    @staticmethod
    def generate(sale, output_dir=RECEIPTS_DIR, tax_rate=TAX_RATE):
        """Render a PNG receipt for `sale` and return its path."""
        os.makedirs(output_dir, exist_ok=True)
        png_path = os.path.join(output_dir, f"{sale.id}.png")

        width = 800
        header_h = 200
        line_h = 28
        footer_h = 200
        x = 40

        f_head = ReceiptGenerator._load_font(28)
        f_sub = ReceiptGenerator._load_font(16)
        f_body = ReceiptGenerator._load_font(14)
        f_mono = ReceiptGenerator._load_font(12)

        # Column positions, right-aligned amounts
        value_x = width - x - 20
        col_total_right = value_x
        col_price_right = value_x - 120
        col_qty_center = col_price_right - 60
        item_col_w = max(80, int(col_qty_center - x) - 12)

        # Wrap names first so the image height fits every line
        measure = ImageDraw.Draw(Image.new('RGB', (1, 1)))
        prepared = []
        for line in sale.lines:
            wrapped = ReceiptGenerator._wrap(measure, line.name, f_mono, item_col_w)
            prepared.append((wrapped, str(line.quantity), f"{line.unit_price_at_sale:.2f}", f"{line.line_total:.2f}"))
        items_h = max(200, sum(len(p[0]) * line_h + 6 for p in prepared) + 20)
        height = header_h + items_h + footer_h

        img = Image.new('RGB', (width, height), color=(255, 255, 255))
        draw = ImageDraw.Draw(img)

        y = 30
        draw.text((x, y), STORE_NAME, font=f_head, fill=(20, 20, 20))
        y += 36
        draw.text((x, y), STORE_ADDRESS, font=f_sub, fill=(60, 60, 60))
        y += 26
        draw.text((x, y), f"Sale #: {sale.id}", font=ReceiptGenerator._load_font(18), fill=(0, 0, 0))
        y += 22
        draw.text((x, y), f"Date: {sale.timestamp.strftime('%Y-%m-%d %H:%M:%S')}", font=f_body, fill=(0, 0, 0))
        y += 20
        draw.text((x, y), f"Customer: {sale.customer_ref or 'Walk-in'}", font=f_body, fill=(0, 0, 0))
        y += 26
        draw.line((x, y, width - x, y), fill=(200, 200, 200), width=1)
        y += 12

        draw.text((x, y), "Item", font=f_mono, fill=(0, 0, 0))
        for label, anchor in (("Qty", 'center'), ("Price", col_price_right), ("Total", col_total_right)):
            tw, _ = ReceiptGenerator._text_size(draw, label, f_mono)
            left = col_qty_center - tw / 2 if anchor == 'center' else anchor - tw
            draw.text((left, y), label, font=f_mono, fill=(0, 0, 0))
        y += 18
        draw.line((x, y, width - x, y), fill=(230, 230, 230), width=1)
        y += 8

        for wrapped, qty, price, total in prepared:
            for i, text in enumerate(wrapped):
                draw.text((x, y), text, font=f_mono, fill=(20, 20, 20))
                if i == 0:
                    qw, _ = ReceiptGenerator._text_size(draw, qty, f_mono)
                    draw.text((col_qty_center - qw / 2, y), qty, font=f_mono, fill=(20, 20, 20))
                    pw, _ = ReceiptGenerator._text_size(draw, price, f_mono)
                    draw.text((col_price_right - pw, y), price, font=f_mono, fill=(20, 20, 20))
                    tw, _ = ReceiptGenerator._text_size(draw, total, f_mono)
                    draw.text((col_total_right - tw, y), total, font=f_mono, fill=(20, 20, 20))
                y += line_h
            draw.line((x, y, width - x, y), fill=(245, 245, 245), width=1)
            y += 6

        y = max(y, header_h + items_h - line_h)
        totals = [f"Subtotal: {_money(sale.subtotal)}",
                  f"Tax ({_percent(tax_rate)}%): {_money(sale.tax)}"]
        if sale.discount:
            totals.append(f"Discount: -{_money(sale.discount)}")
        totals.append(f"Total: {_money(sale.total)}")
        totals.append(f"Payment: {sale.payment_method.label}")
        if sale.cash_given is not None:
            totals.append(f"Paid: {_money(sale.cash_given)}  Change: {_money(sale.change)}")
        for txt in totals:
            tw, _ = ReceiptGenerator._text_size(draw, txt, f_body)
            color = (0, 100, 0) if txt.startswith('Total') else (0, 0, 0)
            draw.text((value_x - tw, y), txt, font=f_body, fill=color)
            y += line_h - 6

        draw.text((x, height - 50), "Thank you for your purchase!", font=f_sub, fill=(80, 80, 80))

        # QR code of the sale id in the header's upper-right corner
        qr_size = 140
        qr = qrcode.QRCode(box_size=4, border=2)
        qr.add_data(sale.id)
        qr.make(fit=True)
        qr_img = qr.make_image(fill_color="black", back_color="white").convert('RGB')
        qr_img = qr_img.resize((qr_size, qr_size), Image.NEAREST)
        img.paste(qr_img, (width - qr_size - 20, 30))

        img.save(png_path)
        logger.info("receipt for %s written to %s", sale.id, png_path)
        return png_path
