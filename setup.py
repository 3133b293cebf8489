"""Setup script for academic-rag-eval."""

from setuptools import find_packages, setup

setup(
    name="academic-rag-eval",
    version="0.1.0",
    description=(
        "Evaluation engine for academic RAG systems - "
        "RAG vs baseline metrics, hallucination analysis and ablation studies"
    ),
    packages=find_packages(include=["rag_eval", "rag_eval.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "python-dotenv>=1.0.0",
        "requests>=2.31.0",
        "rich>=13.0.0",
        "tqdm>=4.66.0",
        "numpy>=1.24.0",
        "scipy>=1.11.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
        ],
        "ml": [
            "sentence-transformers>=2.7.0",
        ],
        "llm": [
            "openai>=1.0.0",
            "anthropic>=0.20.0",
            "ollama>=0.1.0",
        ],
    },
)
