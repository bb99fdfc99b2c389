"""
Thumbnail pipeline: S3 put-event notifier and SQS worker pool.
"""
