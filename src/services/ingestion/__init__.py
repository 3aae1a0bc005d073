"""Client document ingestion pipeline.

Stages: **store -> extract -> chunk -> embed -> write -> annotate**.

1. **Store** (IBlobStore) -- the original bytes are kept under a
   timestamp-prefixed, tenant-scoped key.

2. **Extract** (text_extractor.py / TextExtractor) -- PDF text layer with an
   OCR fallback for scans, UTF-8 decode for text, a placeholder for images.

3. **Chunk** (chunker.py / TextChunker) -- fixed-size, non-overlapping
   character slices.

4. **Embed + write** (IEmbeddingProvider, IChunkStore) -- every chunk is
   embedded and written to the report sink and the chat sink, in order.

5. **Annotate** (document_annotator.py / DocumentAnnotator) -- best-effort
   one-sentence summary and category label.

IngestionPipeline (ingestion_service.py) runs the stages for one upload.
"""

from src.services.ingestion.chunker import TextChunker, chunk_text
from src.services.ingestion.document_annotator import DocumentAnnotator
from src.services.ingestion.ingestion_service import IngestionPipeline
from src.services.ingestion.text_extractor import TextExtractor

__all__ = [
    "DocumentAnnotator",
    "IngestionPipeline",
    "TextChunker",
    "TextExtractor",
    "chunk_text",
]
