"""
Knowledge Base Replies
======================

Free-form customer questions are answered by an OpenAI chat model grounded
in the tenant's own documents (FAQs, product sheets, policies).

Pipeline:
---------
1. **search()**: embed the question and rank the tenant's KnowledgeDocument
   rows by cosine similarity. Only matches at or above the threshold are
   kept, best first.
2. **build_context()**: the Indonesian system prompt. Business profile,
   the customer's name, recent conversation, the matched documents and
   industry-specific instructions.
3. **generate_reply()**: one chat completion over context + question.

``answer()`` runs all three. It never raises: any model or database failure
yields ``TECHNICAL_DIFFICULTY_REPLY`` so the customer always gets a message.

Documents store their embedding as a JSON list of floats alongside the text.
Ranking is done in Python, which is fine for the few hundred documents a
single business keeps.

History entries are dicts with ``message_type`` ("incoming"/"outgoing"),
``message_content`` and optionally ``ai_response``, oldest first.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI, OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import KnowledgeBaseError
from ..models import KnowledgeDocument

logger = logging.getLogger(__name__)

TECHNICAL_DIFFICULTY_REPLY = (
    "Maaf, sistem sedang mengalami gangguan teknis. Silakan coba lagi dalam beberapa saat "
    "atau hubungi tim support kami."
)

REPLY_TEMPERATURE = 0.7
REPLY_MAX_TOKENS = 300


@dataclass
class DocumentMatch:
    content_type: str
    content_text: str
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 for empty or mismatched ones."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


# =============================================================================
# Prompt
# =============================================================================

BASE_INSTRUCTIONS = [
    "Jawab dalam bahasa Indonesia dengan nada yang ramah dan profesional",
    "Gunakan emoji yang sesuai untuk membuat percakapan lebih menarik",
    "GUNAKAN riwayat percakapan di atas untuk memberikan respons yang konsisten dan personal",
    "Jika pelanggan menyebutkan nama mereka di percakapan sebelumnya, gunakan nama tersebut",
    "Ingat konteks percakapan sebelumnya untuk memberikan respons yang lebih relevan",
    'PRIORITASKAN penggunaan informasi yang disediakan di bagian "Dokumen Relevan" di atas. '
    "Ini adalah sumber kebenaran Anda",
    'Jika pertanyaan pelanggan dapat dijawab sepenuhnya dengan informasi dari "Dokumen Relevan", '
    "berikan jawaban yang ringkas dan langsung berdasarkan itu",
    'Jika "Dokumen Relevan" menyatakan "Tidak ada informasi spesifik yang relevan ditemukan", atau jika '
    "informasi yang disediakan tidak cukup untuk menjawab pertanyaan, Anda harus menyatakan dengan jujur "
    "bahwa Anda tidak memiliki informasi yang cukup dan tawarkan untuk menghubungkan pelanggan dengan "
    "tim support manusia",
    'Jangan membuat-buat informasi atau berhalusinasi. Hanya gunakan fakta yang diberikan dalam "Dokumen Relevan"',
    "Untuk pertanyaan umum tentang lokasi, jam operasional, atau kontak, gunakan informasi dari profil "
    "bisnis yang telah disediakan",
    "Jaga agar respons tetap relevan dengan konteks bisnis dan pertanyaan pelanggan",
]

INDUSTRY_INSTRUCTIONS: Dict[str, List[str]] = {
    "healthcare": [
        "Untuk pertanyaan medis, selalu arahkan ke konsultasi langsung dengan dokter atau tenaga medis",
        "Berikan informasi umum tentang layanan, jadwal, dan prosedur berdasarkan basis pengetahuan",
        "Untuk keluhan atau gejala, sarankan untuk segera berkonsultasi dengan tenaga medis",
        "Ingatkan pentingnya konsultasi langsung untuk diagnosis yang akurat",
    ],
    "retail": [
        "Untuk pertanyaan produk, gunakan informasi dari basis pengetahuan produk",
        "Bantu pelanggan menemukan produk yang sesuai dengan kebutuhan mereka",
        "Berikan informasi tentang ketersediaan, harga, dan spesifikasi produk",
    ],
    "education": [
        "Untuk pertanyaan tentang kursus atau program, gunakan informasi dari basis pengetahuan",
        "Bantu calon siswa memahami persyaratan dan proses pendaftaran",
        "Berikan informasi tentang jadwal, biaya, dan fasilitas",
    ],
    "finance": [
        "Untuk pertanyaan keuangan, berikan informasi umum berdasarkan basis pengetahuan",
        "Selalu sarankan konsultasi langsung untuk nasihat keuangan spesifik",
        "Jangan memberikan nasihat investasi atau keuangan yang spesifik",
    ],
}
INDUSTRY_INSTRUCTIONS["ecommerce"] = INDUSTRY_INSTRUCTIONS["retail"]

DEFAULT_INDUSTRY_INSTRUCTIONS = [
    "Berikan informasi yang akurat berdasarkan basis pengetahuan bisnis",
    "Bantu pelanggan dengan pertanyaan umum tentang produk atau layanan",
]


def build_context(
    profile: Any,
    documents: Sequence[DocumentMatch],
    customer_name: Optional[str],
    history: Sequence[Dict[str, Any]] = (),
) -> str:
    """Assemble the system prompt for one customer question."""
    context = "Anda adalah asisten virtual yang ramah dan profesional"

    if profile is not None:
        context += f" untuk {profile.business_name or 'bisnis ini'}. "
        if profile.description:
            context += f"Deskripsi bisnis: {profile.description}. "
        if profile.industry:
            context += f"Industri: {profile.industry}. "
        if profile.operating_hours:
            context += f"Jam operasional: {profile.operating_hours}. "
    else:
        context += ". "

    if customer_name:
        context += f"Anda sedang berbicara dengan {customer_name}. "

    if history:
        context += f"\n\nRiwayat percakapan sebelumnya ({len(history)} pesan terakhir):\n"
        for entry in history:
            if entry.get("message_type") == "incoming":
                context += f"User: {entry.get('message_content', '')}\n"
            elif entry.get("message_type") == "outgoing":
                context += f"Assistant: {entry.get('ai_response') or entry.get('message_content', '')}\n"
        context += "\n"

    context += (
        "\n\nBerikut adalah informasi relevan yang ditemukan dari basis pengetahuan bisnis. "
        "Anda HARUS menggunakan informasi ini sebagai sumber utama untuk menjawab pertanyaan pelanggan:\n\n"
    )

    if documents:
        for index, doc in enumerate(documents, start=1):
            context += (
                f"--- Dokumen Relevan {index} (Tipe: {doc.content_type.upper()}, "
                f"Kemiripan: {doc.similarity * 100:.1f}%) ---\n"
            )
            context += f"{doc.content_text}\n\n"
    else:
        context += (
            "--- Tidak ada informasi spesifik yang relevan ditemukan dalam basis pengetahuan "
            "untuk pertanyaan ini. ---\n\n"
        )

    context += "Instruksi untuk Anda:\n"
    context += "".join(f"- {line}\n" for line in BASE_INSTRUCTIONS)

    industry = profile.industry if profile is not None else None
    if industry:
        context += f"\nInstruksi khusus untuk industri {industry}:\n"
        lines = INDUSTRY_INSTRUCTIONS.get(industry, DEFAULT_INDUSTRY_INSTRUCTIONS)
        context += "".join(f"- {line}\n" for line in lines)

    return context + "\n"


def build_prompt(context: str, message: str) -> str:
    return f"{context}\n\nPertanyaan pelanggan: {message}\n\nJawaban Anda:"


# =============================================================================
# KnowledgeBase
# =============================================================================

class KnowledgeBase:
    """
    Usage:
        kb = KnowledgeBase(db, settings)
        reply = kb.answer(profile, "Jam buka kapan?", customer_name="Ria", history=history)

    ``client`` may be passed to share or fake the OpenAI client. Without one,
    a client is created on first use if OPENAI_API_KEY is configured.
    """

    def __init__(self, db: Session, settings: Settings, client: Optional[OpenAI] = None):
        self.db = db
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Optional[OpenAI]:
        if self._client is None and self.settings.openai_api_key:
            self._client = OpenAI(api_key=self.settings.openai_api_key)
        return self._client

    def embed(self, text: str) -> List[float]:
        """Embedding vector for ``text``. Raises KnowledgeBaseError."""
        if self.client is None:
            raise KnowledgeBaseError("OPENAI_API_KEY not set")
        try:
            response = self.client.embeddings.create(
                model=self.settings.openai_embedding_model,
                input=text,
            )
        except OpenAIError as e:
            raise KnowledgeBaseError(f"Embedding request failed: {e}") from e
        return list(response.data[0].embedding)

    def search(self, tenant_id: str, query: str) -> List[DocumentMatch]:
        """
        Tenant documents similar to ``query``, best first.

        Returns an empty list when embedding or the lookup fails so the
        model still answers, just without grounding documents.
        """
        try:
            query_embedding = self.embed(query)
            rows = (
                self.db.query(KnowledgeDocument)
                .filter(KnowledgeDocument.user_id == tenant_id)
                .all()
            )
        except KnowledgeBaseError as e:
            logger.warning("Knowledge search skipped: %s", e)
            return []
        except SQLAlchemyError as e:
            logger.error("Error loading knowledge documents: %s", e)
            self.db.rollback()
            return []

        threshold = self.settings.rag_similarity_threshold
        matches = []
        for row in rows:
            score = cosine_similarity(query_embedding, row.embedding or [])
            if score >= threshold:
                matches.append(DocumentMatch(row.content_type, row.content_text, score))
        matches.sort(key=lambda m: m.similarity, reverse=True)

        logger.info(
            "Knowledge search: %d documents, %d above %.0f%% threshold",
            len(rows), len(matches), threshold * 100,
        )
        return matches[: self.settings.rag_match_count]

    def generate_reply(self, context: str, message: str) -> str:
        """One chat completion over the context. Falls back to an apology on any failure."""
        if self.client is None:
            logger.error("OPENAI_API_KEY not set - cannot generate reply")
            return TECHNICAL_DIFFICULTY_REPLY

        try:
            completion = self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[{"role": "user", "content": build_prompt(context, message)}],
                temperature=REPLY_TEMPERATURE,
                max_tokens=REPLY_MAX_TOKENS,
            )
        except OpenAIError as e:
            logger.error("Error calling OpenAI: %s", e)
            return TECHNICAL_DIFFICULTY_REPLY

        if not completion.choices or not completion.choices[0].message.content:
            logger.error("Empty completion from OpenAI")
            return TECHNICAL_DIFFICULTY_REPLY
        return completion.choices[0].message.content.strip()

    def answer(
        self,
        profile: Any,
        message: str,
        customer_name: Optional[str] = None,
        history: Sequence[Dict[str, Any]] = (),
    ) -> str:
        """Grounded reply to a free-form question from one of ``profile``'s customers."""
        documents = self.search(profile.user_id, message)
        context = build_context(profile, documents, customer_name, history)
        return self.generate_reply(context, message)
