"""
Message Builder for the Order Flow.

Every customer-facing text the order flow produces, in Indonesian with
WhatsApp *bold* markup. These are pure formatting functions: no store
access and no decisions, so the templates can be changed or translated
without touching the state machine.
"""

from typing import Iterable, List, Optional, Sequence

from ..schemas.ordering import CartItem, CatalogProduct
from .parsers.items import parse_price
from .parsers.validators import FIELD_DELIVERY, FIELD_NAME, FIELD_OUTLET, FIELD_PHONE

# =============================================================================
# Fixed Replies
# =============================================================================

CANCELLED = (
    "Pesanan dibatalkan. Silakan ketik 'menu' untuk melihat daftar menu kami "
    "atau ada yang bisa saya bantu? 🍣"
)
CONFIRMATION_DECLINED = "Pesanan dibatalkan. Ketik 'menu' untuk mulai memesan lagi. 🍣"
GREETING = "Halo! Selamat datang! Saya asisten virtual Anda. Ada yang bisa saya bantu hari ini? 🍣"
MENU_UNAVAILABLE = "Maaf, menu tidak tersedia. Ketik 'batal' untuk membatalkan pesanan."
EMPTY_CART = (
    "Keranjang Anda masih kosong. Silakan ketik nama menu yang tersedia "
    "atau ketik 'menu' untuk melihat daftar lengkap. 🍣"
)
ITEM_NOT_FOUND = (
    "Menu tidak ditemukan. Silakan ketik nama menu yang tersedia "
    "atau ketik 'menu' untuk melihat daftar lengkap. 🍣"
)
PAYMENT_FAILED = (
    "Maaf, terjadi kesalahan saat membuat link pembayaran. "
    "Silakan coba lagi atau hubungi customer service kami. 😔"
)
AWAITING_PAYMENT = (
    "Pesanan Anda sedang menunggu pembayaran. Silakan selesaikan pembayaran "
    "melalui link yang telah dikirimkan. 💳\n\nJika ingin memesan lagi, ketik 'menu'. 🍣"
)

DEFAULT_OUTLETS = ["Outlet Utama", "Outlet Cabang 1", "Outlet Cabang 2"]

MENU_FOOTER = (
    "🛒 Untuk memesan, ketik nama menu yang ingin Anda pesan.\n"
    "📝 Contoh: 'Salmon Roll 2 porsi' atau 'Saya mau pesan Ramen Shoyu'\n\n"
    "📍 Jangan lupa sebutkan outlet dan cara pengambilan ya!"
)

# Shown when a tenant has no active products yet
FALLBACK_MENU = (
    "🍣 *MENU STREET SUSHI* 🍣\n\n"
    "1. *Salmon Roll* - Rp 50.000\n"
    "   📝 Fresh salmon dengan nori dan sushi rice\n\n"
    "2. *Tuna Nigiri* - Rp 30.000\n"
    "   📝 Tuna segar di atas sushi rice\n\n"
    "3. *Ramen Shoyu* - Rp 45.000\n"
    "   📝 Ramen dengan kuah shoyu yang gurih\n\n"
    "4. *Gyoza* - Rp 25.000\n"
    "   📝 Dumpling isi daging dan sayuran\n\n"
    "5. *Ocha* - Rp 10.000\n"
    "   📝 Teh hijau Jepang yang menyegarkan\n\n"
    "6. *Miso Soup* - Rp 15.000\n"
    "   📝 Sup miso hangat dengan tahu dan rumput laut\n\n"
    + MENU_FOOTER
)

DETAILS_REQUEST = (
    "📝 Sekarang saya butuh data berikut:\n"
    "👤 Nama lengkap\n"
    "📱 Nomor telepon\n"
    "📍 Outlet pilihan\n"
    "🚗 Metode: 'ambil sendiri' atau 'delivery'\n\n"
    "💬 Contoh: 'Nama saya Ria, HP 0812345678, outlet Palagan, ambil sendiri'"
)

MISSING_FIELD_LABELS = {
    FIELD_NAME: "👤 Nama lengkap",
    FIELD_PHONE: "📱 Nomor HP/WhatsApp",
    FIELD_OUTLET: "📍 Outlet pilihan",
    FIELD_DELIVERY: "🚗 Metode pengambilan (ambil sendiri/delivery)",
}


# =============================================================================
# Number Formatting
# =============================================================================

def format_number(value: float) -> str:
    """
    Format a number the Indonesian way: dot thousands, comma decimals.

    Examples:
        100000   -> "100.000"
        12500.5  -> "12.500,5"
    """
    rounded = round(float(value), 3)
    sign = "-" if rounded < 0 else ""
    magnitude = abs(rounded)
    text = f"{int(magnitude):,}".replace(",", ".")
    decimals = f"{magnitude:.3f}".split(".")[1].rstrip("0")
    if decimals:
        text += "," + decimals
    return sign + text


def format_price(value: float) -> str:
    return f"Rp {format_number(value)}"


def delivery_label(method: Optional[str]) -> str:
    return "Ambil sendiri" if method == "pickup" else "Delivery"


# =============================================================================
# Menu
# =============================================================================

def build_menu(products: Sequence[CatalogProduct]) -> str:
    """Render the menu listing; an empty catalog gets the static fallback menu."""
    if not products:
        return FALLBACK_MENU

    lines = ["🍣 *MENU STREET SUSHI* 🍣\n"]
    for index, product in enumerate(products, start=1):
        price = format_price(int(parse_price(product.price))) if product.price else "Harga belum tersedia"
        lines.append(f"{index}. *{product.name}*")
        lines.append(f"   💰 {price}")
        if product.description:
            lines.append(f"   📝 {product.description}")
        lines.append("")

    return "\n".join(lines) + "\n" + MENU_FOOTER


# =============================================================================
# Cart Summaries
# =============================================================================

def _item_lines(items: Iterable[CartItem]) -> List[str]:
    return [
        f"{index}. {item.product_name} x{item.quantity} = {format_price(item.line_total)}"
        for index, item in enumerate(items, start=1)
    ]


def build_items_added(items: Sequence[CartItem], total: float, ask_for_details: bool) -> str:
    """
    Confirmation after items were added.

    From browsing the customer is asked for their details straight away;
    while collecting items they are invited to add more or type "lanjut".
    """
    text = "✅ Item berhasil ditambahkan ke keranjang!\n\n*KERANJANG ANDA:*\n"
    text += "\n".join(_item_lines(items)) + "\n"
    text += f"\n💰 *Total: {format_price(total)}*\n\n"
    if ask_for_details:
        text += DETAILS_REQUEST
    else:
        text += "🛒 Mau tambah menu lain? Ketik nama menunya.\n"
        text += "✅ Atau ketik 'lanjut' untuk isi data pengambilan."
    return text


def build_details_request(items: Sequence[CartItem], total: float, outlets: Optional[Sequence[str]] = None) -> str:
    """Cart summary followed by the request for customer details and outlet list."""
    text = "📋 *RINGKASAN KERANJANG*\n\n"
    text += "\n".join(_item_lines(items)) + "\n"
    text += f"\n💰 *Total: {format_price(total)}*\n\n"
    text += DETAILS_REQUEST + "\n\n"
    text += "📍 *Outlet yang tersedia:*\n"
    text += "\n".join(f"• {outlet}" for outlet in (outlets or DEFAULT_OUTLETS))
    return text


def build_missing_details_prompt(missing_fields: Sequence[str]) -> str:
    text = "📝 Saya masih butuh info berikut:\n\n"
    for index, field in enumerate(missing_fields, start=1):
        text += f"{index}. {MISSING_FIELD_LABELS.get(field, field)}\n"
    text += "\n💬 Bisa kirim sekaligus ya!\n"
    text += "📝 Contoh: 'Nama saya Ria, HP 0812345678, outlet utama, ambil sendiri'"
    return text


def build_order_confirmation(cart) -> str:
    """Final review of the order before payment."""
    text = "📋 *KONFIRMASI PESANAN FINAL*\n\n🍣 *Menu:*\n"
    text += "\n".join(_item_lines(cart.items)) + "\n"
    text += f"\n👤 *Nama:* {cart.customer_name}\n"
    text += f"📱 *HP:* {cart.phone_number}\n"
    text += f"📍 *Outlet:* {cart.outlet_preference}\n"
    text += f"🚗 *Pengambilan:* {delivery_label(cart.delivery_method)}\n"
    text += f"\n💰 *Total: {format_price(cart.total_amount)}*\n\n"
    text += "✅ Apakah semua data sudah benar?\n"
    text += "💬 Ketik 'ya' untuk lanjut pembayaran atau 'batal' untuk membatalkan.\n\n"
    text += "🍣"
    return text


# =============================================================================
# Payment Messages
# =============================================================================

def short_order_id(order_id: str) -> str:
    return (order_id or "")[:8]


def build_payment_confirmation(order_id: str, total: float, business_name: Optional[str]) -> str:
    text = "🎉 *PESANAN DIKONFIRMASI!*\n\n"
    text += f"📋 ID Pesanan: #{short_order_id(order_id)}\n"
    text += f"💰 Total pembayaran: *{format_price(total)}*\n\n"
    text += "💳 *PEMBAYARAN GOPAY*\n\n"
    text += "Silakan scan QR code GoPay yang akan dikirim setelah pesan ini.\n\n"
    text += "⏰ QR code berlaku selama 60 menit.\n"
    text += "✅ Setelah pembayaran berhasil, pesanan Anda akan diproses.\n\n"
    text += f"🙏 Terima kasih telah memilih {business_name or 'kami'}!"
    return text


def build_qr_caption(qr_code_url: str) -> str:
    return (
        "📱 *QR CODE GOPAY*\n\n"
        "🔍 Scan QR code di bawah ini dengan aplikasi GoPay Anda:\n\n"
        f"🌐 Atau buka link ini di browser: {qr_code_url}"
    )


def build_qr_link_fallback(qr_code_url: str) -> str:
    return (
        "📱 *LINK PEMBAYARAN GOPAY*\n\n"
        f"🌐 Buka link berikut untuk pembayaran:\n{qr_code_url}\n\n"
        "📱 Atau scan QR code melalui browser."
    )


def build_business_notification(order_id: str, cart) -> str:
    """Internal "new order" message sent to the business's own number."""
    text = "🔔 *PESANAN BARU MASUK!*\n\n"
    text += f"📋 *ID Pesanan:* #{short_order_id(order_id)}\n"
    text += f"👤 *Pelanggan:* {cart.customer_name or 'Tidak dikenal'}\n"
    text += f"📱 *HP:* {cart.phone_number or 'Tidak tersedia'}\n"
    text += f"📍 *Outlet:* {cart.outlet_preference or 'Tidak disebutkan'}\n"
    text += f"🚗 *Metode:* {delivery_label(cart.delivery_method)}\n"
    text += f"💰 *Total:* {format_price(cart.total_amount)}\n\n"
    if cart.items:
        text += "🍣 *Menu:*\n"
        for index, item in enumerate(cart.items, start=1):
            text += f"{index}. {item.product_name} x{item.quantity}\n"
        text += "\n"
    text += "⏰ Pesanan menunggu pembayaran. Akan dikonfirmasi otomatis setelah customer bayar."
    return text


def build_payment_received(order_id: str, total: float, customer_name: Optional[str],
                           business_name: Optional[str]) -> str:
    """Thank-you message sent when the payment gateway reports settlement."""
    return (
        "🎉 *PEMBAYARAN BERHASIL!*\n\n"
        f"Terima kasih {customer_name or 'Pelanggan'}! Pembayaran Anda telah kami terima.\n\n"
        "📋 *Detail Pesanan:*\n"
        f"• ID Pesanan: #{short_order_id(order_id)}\n"
        f"• Total: {format_price(total)}\n"
        "• Status: Sedang Diproses\n\n"
        "⏳ Pesanan Anda sedang kami proses dan akan segera disiapkan.\n\n"
        "📞 Jika ada pertanyaan, jangan ragu untuk menghubungi kami.\n\n"
        f"Terima kasih telah mempercayai {business_name or 'Kami'}! 🙏"
    )


# =============================================================================
# Plan Limits
# =============================================================================

def build_customer_limit_reached(plan: str, limit: int) -> str:
    return (
        f"Maaf, paket {plan} Anda telah mencapai batas maksimal {limit} nomor WhatsApp terdaftar. "
        "Silakan upgrade paket atau hubungi admin untuk informasi lebih lanjut."
    )


def build_ai_limit_reached(plan: str, limit: int) -> str:
    return (
        f"Maaf, Anda telah mencapai batas {limit} percakapan AI bulanan untuk paket {plan}. "
        "Silakan upgrade paket atau hubungi admin untuk informasi lebih lanjut."
    )
