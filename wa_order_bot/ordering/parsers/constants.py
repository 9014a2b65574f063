"""
Parser Constants.

Keyword tables and compiled regex patterns used by the deterministic
Indonesian-language parsers. Kept separate from the parsing code so the
heuristics can be tuned without touching control flow.
"""

import re

# =============================================================================
# Intent Keywords
# =============================================================================
# Insertion order matters: on a score tie the earlier intent wins.

INTENT_KEYWORDS = {
    "menu": [
        "menu", "daftar makanan", "ada apa aja", "makanan", "minuman", "sushi", "ramen", "harga",
        "mau pesan", "ingin pesan", "mau beli", "ingin beli", "mau order", "ingin order",
        "tolong carikan", "carikan pilihan", "rekomendasi", "recommended", "suggest",
        "apa yang enak", "menu favorit", "best seller", "paling laris", "signature",
        "lihat menu", "tampilkan menu", "show menu", "katalog", "produk",
    ],
    "order": [
        "pesan", "order", "beli", "mau", "delivery", "antar", "ambil",
        "checkout", "bayar", "lanjut", "proses", "konfirmasi",
    ],
    "location": ["outlet", "lokasi", "cabang", "alamat", "dimana", "dekat"],
    "reservation": ["reservasi", "booking", "tempat duduk", "meja", "book"],
    "birthday": ["ulang tahun", "birthday", "hampers", "kado", "hadiah", "ultah"],
    "event": ["event", "wedding", "pernikahan", "catering", "acara"],
    "promo": ["promo", "diskon", "penawaran", "murah", "hemat", "cashback"],
    "workshop": ["workshop", "kelas", "belajar", "anak", "cooking class", "kursus"],
}

MENU_KEYWORD_WEIGHT = 1.5
DEFAULT_KEYWORD_WEIGHT = 1.0

# Any of these short-circuits to a high-confidence menu intent
MENU_PHRASES = [
    "mau pesan menu",
    "ingin pesan menu",
    "tolong carikan pilihan",
    "carikan pilihan paling recommended",
    "apa yang enak",
    "menu apa aja",
    "ada menu apa",
    "lihat daftar menu",
]

MENU_PHRASE_CONFIDENCE = 0.9
ORDERING_CONFIDENCE_THRESHOLD = 0.2
ORDERING_INTENTS = frozenset({"menu", "order"})


# =============================================================================
# Order Item Patterns
# =============================================================================

# Leading ordering phrases; group 1 is the item-bearing remainder.
# The first pattern that matches wins.
ORDERING_PHRASE_PATTERNS = [
    re.compile(r"(?:saya\s+(?:ingin|mau)\s+pesan|pesan)\s+(.+)", re.IGNORECASE),
    re.compile(r"(?:oke\s+saya\s+ingin\s+pesan|saya\s+pesan)\s+(.+)", re.IGNORECASE),
    re.compile(r"(?:mau\s+pesan|ingin\s+pesan|pesan)\s+(.+)", re.IGNORECASE),
]

# Optional unit words between a number and a product name
QUANTITY_UNITS = r"(?:porsi|pcs|buah|gelas|roll)"

# Quantity shapes tried in order. {name} is the escaped, lowercased product name.
QUANTITY_PATTERN_TEMPLATES = [
    r"{name}\s*(\d+)\s*" + QUANTITY_UNITS + r"?",      # "salmon roll 2 porsi"
    r"(\d+)\s*" + QUANTITY_UNITS + r"?\s*{name}",      # "2 porsi salmon roll"
    r"{name}\s*(\d+)\s*(?:dan|,|$)",                   # "salmon roll 2 dan ..."
    r"(\d+)\s*{name}",                                 # "2salmon roll"
    r"{name}.*?(\d+)",                                 # "salmon roll yang pedas 2"
]

MIN_QUANTITY = 1
MAX_QUANTITY = 50

# Leading decimal number of a price string ("50000", "45000.50", "25000 IDR")
PRICE_PREFIX_PATTERN = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)")


# =============================================================================
# Customer Detail Patterns
# =============================================================================

# Indonesian mobile: 0 / +62 / 62, then 8, then 8-13 digits, spaces or dashes
PHONE_PATTERN = re.compile(r"(?:0|\+62|62)[\s-]?8[\d\s-]{8,13}")
PHONE_SEPARATORS = re.compile(r"[\s-]")

# Trigger words are case-insensitive; the name itself must be Capitalized Words
NAME_PATTERN = re.compile(r"(?i:nama|saya|aku)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")

OUTLET_PATTERNS = [
    re.compile(
        r"(?:outlet|cabang)\s+([a-zA-Z0-9\s]+?)(?:\s*,|\s*$|\s+(?:ambil|delivery|antar))",
        re.IGNORECASE,
    ),
    re.compile(r"(?:outlet|cabang)\s+([a-zA-Z0-9\s]+)", re.IGNORECASE),
    # A bare capitalized token right before a comma, end or delivery keyword
    re.compile(
        r"(?:(?i:street\s+sushi)\s+)?\b([A-Z][a-zA-Z]+)(?:\s*,|\s*$|\s+(?i:ambil|delivery|antar))"
    ),
]

OUTLET_STOPWORDS = frozenset({
    "nama", "saya", "aku", "hp", "nomor", "telepon",
    "ambil", "sendiri", "delivery", "antar",
})

DELIVERY_KEYWORDS = ("antar", "delivery")
PICKUP_KEYWORDS = ("ambil", "pickup")


# =============================================================================
# Conversation Keywords
# =============================================================================
# Plain substring checks on the lowercased message.

CANCEL_KEYWORDS = ("batal", "cancel", "ulang")
PROCEED_KEYWORDS = ("selesai", "lanjut", "checkout")
AFFIRM_KEYWORDS = ("ya", "benar", "lanjut", "bayar")
