"""
surface_inspection - Reference-based surface defect inspection.

Compares captured frames against operator-registered reference images
per defect category, using hand-built pixel similarity metrics fused
into one confidence per category, and reports defects whose confidence
reaches the category threshold.

Modules:
    engine          DefectDecisionEngine: one inspection pass per frame
    matcher         Best-reference matching for a category
    scoring         Per-category weighted similarity fusion
    metrics         Structural, edge, patch and color similarity
    histograms      RGB histogram similarity + FAISS reference search
    texture         Texture/roughness/gloss bundle for flash defects
    pixel_features  Dark/irregular pixel scan and bounding boxes
    preprocessing   Decoding and canonical resampling
    frame_resizer   JPEG downscaling for storage
    thresholds      Per-category thresholds and settings migration
    models          Shared data model
    errors          Exception types
"""

__version__ = "1.0.0"
