"""API — FastAPI surface for the export pipeline."""
