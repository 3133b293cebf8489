"""
Prompt templates for the two answer paths and for the LLM judge.

Answer paths:
  - SYSTEM_PROMPT + RAG_PROMPT: grounded answer with [Source N] citations
  - AGENTIC_SYSTEM_PROMPT: same, for agentic-mode configurations
  - BASELINE_SYSTEM_PROMPT: ungrounded answer from model knowledge only

Judge prompts all ask for a single number between 0 and 1.
"""

from typing import List

# ============================================================
# System prompts
# ============================================================

SYSTEM_PROMPT = """You are an academic research assistant with access to a curated \
university knowledge base. Answer accurately and thoroughly based on the \
retrieved context.

Rules:
1. Cite sources with [Source N] notation for every claim drawn from the context
2. Distinguish clearly between context-based facts and general knowledge
3. If the context is insufficient, say what information is missing
4. Use precise academic terminology
5. Respond in the same language as the question"""

AGENTIC_SYSTEM_PROMPT = """You are an agentic academic research assistant. \
Understand the question, plan which searches you need, gather evidence, then \
synthesize a well-structured answer.

Rules:
1. Break complex questions into sub-questions and address each one
2. Cite sources with [Source N] notation for every claim
3. If retrieval is insufficient, reformulate and search again
4. Acknowledge uncertainty explicitly
5. Respond in the same language as the question"""

BASELINE_SYSTEM_PROMPT = """You are an academic research assistant. Answer from \
your own knowledge.

When answering:
- Be clear and precise
- Maintain academic rigor
- Acknowledge limitations in your knowledge when relevant
- Respond in the same language as the question"""

# ============================================================
# Grounded prompt
# ============================================================

RAG_PROMPT = """## Retrieved Context
The following passages were retrieved from the knowledge base.

{context}

---

Based on the above context, answer the following question. \
Cite sources using [Source N].

Question: {question}

Answer:"""

NO_CONTEXT_NOTE = "(No relevant passages were found in the knowledge base.)"


def build_context(chunks: list) -> str:
    """Numbered passages; the number is what [Source N] citations refer to."""
    if not chunks:
        return NO_CONTEXT_NOTE
    parts = []
    for i, chunk in enumerate(chunks, 1):
        title = getattr(chunk, "document_title", None) or ""
        header = f"[Source {i}]"
        if title:
            header += f" {title}"
        parts.append(f"{header}\n{chunk.content}")
    return "\n\n".join(parts)


def build_rag_prompt(context: str, question: str) -> str:
    return RAG_PROMPT.format(context=context, question=question)


# ============================================================
# Judge prompts
# ============================================================

SCORE_INSTRUCTION = "Respond ONLY with a number between 0 and 1."


def _numbered(contexts: List[str]) -> str:
    return "\n\n".join(f"[{i}] {c}" for i, c in enumerate(contexts, 1))


FACTUAL_CORRECTNESS_PROMPT = """You are comparing two answers for factual correctness.

Generated answer: {answer}

Reference answer: {ground_truth}

Task: Evaluate how factually correct the generated answer is compared with \
the reference answer. Consider factual accuracy and completeness.
{instruction}"""

CONTEXT_PRECISION_PROMPT = """You are evaluating the precision of the contexts \
retrieved to answer a question.

Question: {question}

Reference answer: {ground_truth}

Retrieved contexts:
{contexts}

Task: For each context decide whether it contains information useful for \
answering the question correctly. Divide the number of useful contexts by the \
total number of contexts.
{instruction}"""

CONTEXT_RECALL_PROMPT = """You are evaluating the recall of retrieved contexts.

Reference answer: {ground_truth}

Retrieved contexts:
{contexts}

Task: Determine what fraction of the information in the reference answer is \
covered by the retrieved contexts.
- 1.0 = all information in the reference answer is present in the contexts
- 0.0 = none of it is present
{instruction}"""

UNGROUNDED_HALLUCINATION_PROMPT = """Analyze the following answer for \
hallucinations (fabricated or inaccurate information). No reference documents \
are available, so judge intrinsic plausibility.

Answer: {answer}

Identify:
1. Specific details (numbers, names, dates, citations) that are unlikely to be accurate
2. Claims that contradict well-established knowledge
3. Overgeneralizations without basis

Give the HALLUCINATION RATE from 0 to 1 (0 = no hallucination, 1 = fully hallucinated).
{instruction}"""

QUESTION_RECONSTRUCTION_PROMPT = """Read the answer below and write the single \
question it most directly answers. Respond ONLY with the question.

Answer: {answer}

Question:"""

DOMAIN_PROMPT = """Evaluate the {criterion} of the following answer in the \
context of {domain_label}.

Answer: {answer}

Supporting context:
{contexts}

Criteria:
{criteria}

Give a score from 0 to 1.
{instruction}"""
