"""S3 storage backend: object operations, multipart uploads, paginated listing
and presigned requests on top of boto3."""
