"""Image ingestion: validate uploads, stage derivatives, promote or delete them."""
