"""logpoller test suite.

- test_group_tracker.py / test_watermark_store.py: dedup window, purge, state file formats
- test_start_position.py / test_path_utils.py / test_config_loader.py: start-up configuration
- test_cloudwatch_source.py: boto3 client wrapper (botocore Stubber)
- test_poller.py: poll loop against an in-memory source
- test_cli.py: command line entry point
"""
