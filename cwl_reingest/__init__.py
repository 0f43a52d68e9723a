"""CloudWatch Logs transformation Lambda for Kinesis Data Firehose with overflow reingestion."""

__version__ = "0.1.0"
