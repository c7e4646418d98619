"""Common constants shared across iacgate modules."""

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_BLOCKED = 3

DEFAULT_REGION = "us-east-1"
DEFAULT_ENVIRONMENT = "prod"
DEFAULT_TERRAFORM_VERSION = "1.14.0"
DEFAULT_TEMPLATE_PATH = "template.yaml"
DEFAULT_CAPABILITIES = "CAPABILITY_NAMED_IAM"
DEFAULT_SAM_CONFIG_PATH = "samconfig.toml"

WEB_IDENTITY_AUDIENCE = "sts.amazonaws.com"
APPROVED_ENVIRONMENTS_VAR = "IACGATE_APPROVED_ENVIRONMENTS"
DENIED_ENVIRONMENTS_VAR = "IACGATE_DENIED_ENVIRONMENTS"

CHECKSUMS_FILE = "checksums.txt"
MANIFEST_FILE = "manifest.json"

# Change-management controls evidenced by a reviewed plan artifact.
COMPLIANCE_TAGS = [
    "CM-3",
    "CM-4",
    "CM-5",
    "SA-10",
    "ISO27001-A.12.1.2",
    "AWS-WA-Ops-Deploy",
]
