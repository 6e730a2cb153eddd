"""Document ingestion pipeline for the coursekb knowledge base.

Orchestrates the full pipeline: **preprocess -> chunk -> assess -> embed -> store**.

Pipeline stages overview:

1. **Preprocess** (preprocessor.py / DocumentPreprocessor) -- sanitizes
   extracted text, removes duplicate paragraphs, detects language and
   derives title, key phrases and a structure summary.

2. **Chunk** (chunker.py / ChunkingEngine) -- splits the document into
   token-bounded chunks with the fixed, sentence, paragraph or semantic
   strategy.  Token budgets are counted with tokenizer.py.

3. **Assess** (quality_assessor.py / QualityAssessor) -- scores
   readability, coherence and completeness, flags rule-based errors and
   produces recommendations.

4. **Embed + Store** (document_pipeline.py / DocumentPipeline) -- encodes
   chunk text and hands versioned payloads to the VectorIngestionService.
"""

from coursekb.services.ingestion.chunker import ChunkingEngine, split_sentences
from coursekb.services.ingestion.document_pipeline import DocumentPipeline
from coursekb.services.ingestion.preprocessor import DocumentPreprocessor
from coursekb.services.ingestion.quality_assessor import QualityAssessor
from coursekb.services.ingestion.tokenizer import (
    HuggingFaceTokenizer,
    SimpleTokenizer,
    Tokenizer,
    build_tokenizer,
)

__all__ = [
    "ChunkingEngine",
    "DocumentPipeline",
    "DocumentPreprocessor",
    "HuggingFaceTokenizer",
    "QualityAssessor",
    "SimpleTokenizer",
    "Tokenizer",
    "build_tokenizer",
    "split_sentences",
]
