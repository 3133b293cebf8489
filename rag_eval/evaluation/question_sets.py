"""
Evaluation question sets.

ACADEMIC_QUESTIONS is the default set (Indonesian university domain) used
when a run or ablation study is created without its own questions. Custom
sets are loaded from JSON or YAML files holding a list of objects:

  - question: required
  - ground_truth: optional reference answer
  - relevant_chunk_ids: optional ids for retrieval ranking metrics
  - category / difficulty / language: optional labels

Seed: 42 for reproducible sampling.
"""

import json
import logging
import random
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from rag_eval.errors import ValidationError

logger = logging.getLogger(__name__)

CATEGORIES = [
    "research_methodology",
    "academic_writing",
    "statistical_analysis",
    "literature_review",
    "data_collection",
    "thesis_structure",
    "citation_referencing",
    "general_academic",
]


class EvalQuestion(BaseModel):
    """A question with optional ground truth and labels."""
    question: str
    ground_truth: Optional[str] = None
    relevant_chunk_ids: Optional[List[str]] = None
    category: str = "general_academic"
    difficulty: str = "medium"  # easy, medium, hard
    language: str = "id"

    def to_run_input(self) -> dict:
        """Shape accepted by EvaluationRunner.create_run."""
        return {
            "question": self.question,
            "ground_truth": self.ground_truth,
            "relevant_chunk_ids": self.relevant_chunk_ids,
        }


# ============================================================
# Default academic questions
# ============================================================

ACADEMIC_QUESTIONS = [
    EvalQuestion(
        question="Apa yang dimaksud dengan metodologi penelitian kualitatif dan kapan sebaiknya digunakan?",
        ground_truth=(
            "Metodologi penelitian kualitatif adalah pendekatan yang berfokus pada pemahaman mendalam "
            "tentang fenomena sosial melalui data non-numerik seperti wawancara, observasi, dan analisis "
            "dokumen. Metode ini digunakan ketika peneliti ingin memahami makna dan pengalaman subjektif "
            "partisipan, mengeksplorasi fenomena yang belum banyak diteliti, atau membangun teori baru."
        ),
        category="research_methodology",
    ),
    EvalQuestion(
        question="Jelaskan perbedaan antara pendekatan deduktif dan induktif dalam penelitian.",
        ground_truth=(
            "Pendekatan deduktif dimulai dari teori atau hipotesis umum lalu mengujinya dengan data "
            "empiris (top-down). Pendekatan induktif dimulai dari observasi dan data spesifik lalu "
            "membangun pola dan teori (bottom-up). Penelitian kuantitatif umumnya deduktif, sedangkan "
            "penelitian kualitatif cenderung induktif."
        ),
        category="research_methodology",
    ),
    EvalQuestion(
        question="Bagaimana cara menentukan ukuran sampel yang tepat dalam penelitian kuantitatif?",
        ground_truth=(
            "Ukuran sampel dapat ditentukan dengan rumus Slovin, tabel Krejcie dan Morgan, atau power "
            "analysis yang mempertimbangkan effect size, alpha, dan power. Faktor yang mempengaruhi "
            "adalah tingkat kepercayaan, margin of error, variabilitas populasi, dan jenis analisis."
        ),
        category="research_methodology",
        difficulty="hard",
    ),
    EvalQuestion(
        question="Jelaskan struktur penulisan abstrak yang baik dalam karya ilmiah.",
        ground_truth=(
            "Abstrak yang baik memuat latar belakang dan tujuan, metodologi, hasil utama, serta "
            "kesimpulan dan implikasi. Panjangnya 150-300 kata dalam satu paragraf tanpa sitasi."
        ),
        category="academic_writing",
    ),
    EvalQuestion(
        question="Apa saja komponen yang harus ada dalam bab pendahuluan skripsi?",
        ground_truth=(
            "Bab pendahuluan memuat latar belakang masalah, rumusan masalah, tujuan penelitian, "
            "manfaat penelitian, batasan penelitian, dan sistematika penulisan."
        ),
        category="thesis_structure",
        difficulty="easy",
    ),
    EvalQuestion(
        question="Kapan sebaiknya menggunakan uji parametrik versus non-parametrik?",
        ground_truth=(
            "Uji parametrik digunakan ketika data berdistribusi normal, varians homogen, berskala "
            "interval atau rasio, dan sampel cukup besar. Uji non-parametrik digunakan ketika asumsi "
            "tersebut tidak terpenuhi, data ordinal atau nominal, atau sampel kecil."
        ),
        category="statistical_analysis",
        difficulty="hard",
    ),
    EvalQuestion(
        question="Jelaskan konsep validitas dan reliabilitas dalam instrumen penelitian.",
        ground_truth=(
            "Validitas adalah sejauh mana instrumen mengukur apa yang seharusnya diukur. Reliabilitas "
            "adalah konsistensi hasil pengukuran, misalnya dengan test-retest atau Cronbach's alpha "
            "di atas 0.7."
        ),
        category="research_methodology",
    ),
    EvalQuestion(
        question="Jelaskan tahapan dalam melakukan systematic literature review.",
        ground_truth=(
            "Tahapannya adalah merumuskan pertanyaan penelitian, menyusun protokol pencarian, "
            "menetapkan kriteria inklusi dan eksklusi, screening artikel, ekstraksi data, penilaian "
            "kualitas, sintesis, dan pelaporan sesuai PRISMA."
        ),
        category="literature_review",
        difficulty="hard",
    ),
    EvalQuestion(
        question="Bagaimana cara mensitasi sumber dalam format APA edisi ke-7?",
        ground_truth=(
            "Sitasi dalam teks menggunakan (Penulis, Tahun). Untuk tiga penulis atau lebih digunakan "
            "et al. sejak sitasi pertama. Daftar pustaka mencantumkan penulis, tahun, judul, sumber, "
            "dan DOI bila tersedia."
        ),
        category="citation_referencing",
    ),
    EvalQuestion(
        question="Apa saja teknik pengumpulan data dalam penelitian kualitatif?",
        ground_truth=(
            "Teknik pengumpulan data kualitatif meliputi wawancara mendalam, observasi, focus group "
            "discussion, analisis dokumen, dan catatan lapangan. Triangulasi sumber meningkatkan "
            "kredibilitas temuan."
        ),
        category="data_collection",
    ),
    EvalQuestion(
        question="Apa yang dimaksud dengan plagiarisme dan bagaimana cara menghindarinya?",
        ground_truth=(
            "Plagiarisme adalah penggunaan ide atau karya orang lain tanpa pengakuan yang tepat. "
            "Cara menghindarinya adalah mensitasi semua sumber, memakai tanda kutip untuk kutipan "
            "langsung, memparafrase dengan tetap mensitasi, dan mengelola referensi dengan Zotero "
            "atau Mendeley."
        ),
        category="academic_writing",
        difficulty="easy",
    ),
]


def sample_questions(count: int, seed: int = 42) -> List[EvalQuestion]:
    """Reproducible random subset of the default set."""
    rng = random.Random(seed)
    return rng.sample(ACADEMIC_QUESTIONS, min(count, len(ACADEMIC_QUESTIONS)))


def questions_by_category(category: str) -> List[EvalQuestion]:
    return [q for q in ACADEMIC_QUESTIONS if q.category == category]


# ============================================================
# Import / export
# ============================================================

def load_questions(path: str) -> List[EvalQuestion]:
    """Load a question set from a .json, .yaml or .yml file."""
    file_path = Path(path)
    if not file_path.exists():
        raise ValidationError(f"Question file not found: {path}")

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise ValidationError(f"{path} must contain a list of questions")

    try:
        questions = [EvalQuestion(**d) for d in data]
    except (PydanticValidationError, TypeError) as e:
        raise ValidationError(f"Malformed question in {path}: {e}") from e

    logger.info("Loaded %d questions from %s", len(questions), path)
    return questions


def save_questions(questions: List[EvalQuestion], output_path: str):
    """Save a question set as JSON."""
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    Path(output_path).write_text(
        json.dumps([q.model_dump() for q in questions], indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Saved %d questions to %s", len(questions), output_path)


def verify_questions(questions: List[EvalQuestion]) -> Dict:
    """Stats for a question set."""
    stats = {
        "total": len(questions),
        "with_ground_truth": sum(1 for q in questions if q.ground_truth),
        "with_relevant_chunks": sum(1 for q in questions if q.relevant_chunk_ids),
        "by_category": {},
        "by_difficulty": {},
        "by_language": {},
    }
    for q in questions:
        stats["by_category"][q.category] = stats["by_category"].get(q.category, 0) + 1
        stats["by_difficulty"][q.difficulty] = stats["by_difficulty"].get(q.difficulty, 0) + 1
        stats["by_language"][q.language] = stats["by_language"].get(q.language, 0) + 1
    return stats
