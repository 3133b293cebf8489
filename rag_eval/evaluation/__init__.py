"""
Evaluation module - runs, metrics, ablation studies and aggregation.

Submodules:
  - retrieval_metrics: Precision@K, MRR, NDCG@K over ground-truth chunk ids
  - generation_metrics: token F1, bag-of-words cosine, keyword overlap
  - quality_metrics: faithfulness, relevancy, context precision/recall, correctness
  - hallucination_metrics: hallucination rate, factual consistency, attribution
  - domain_metrics: rubric-based academic rigor, citation accuracy, terminology
  - latency_metrics: per-stage latency tracer and stats (p50, p95, p99)
  - metric_battery: full metric vector for one answer
  - evaluation_runner: run lifecycle and per-question evaluation
  - ablation: ablation studies over configuration variants
  - aggregator: run summaries, improvements, hallucination summary
  - statistical_analysis: Shapiro-Wilk, t-test/Wilcoxon, Cohen's d, Bootstrap CI
  - question_sets: default academic questions, JSON/YAML import
"""
