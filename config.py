"""
Configuration module for Bedrock Orchestrator.
Handles all environment variables, model specifications, sandbox policy and application settings.
"""

import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    """Read a comma-separated environment variable into a list of stripped entries."""
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class AWSConfig:
    """AWS-specific configuration"""
    region: str = os.getenv("AWS_REGION", "us-east-1")
    access_key_id: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = os.getenv("AWS_SESSION_TOKEN", "")
    profile_name: str = os.getenv("AWS_PROFILE", "")

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def has_session_token(self) -> bool:
        return bool(self.session_token)

    def has_profile(self) -> bool:
        return bool(self.profile_name)


@dataclass
class ModelConfig:
    """Model-specific configuration"""
    model_id: str = os.getenv("BEDROCK_MODEL_ID", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")
    max_tokens: int = int(os.getenv("MAX_TOKENS", "8192"))
    temperature: Optional[float] = float(os.getenv("TEMPERATURE", "")) if os.getenv("TEMPERATURE") else None
    throughput_mode: str = os.getenv("THROUGHPUT_MODE", "cross-region")

    # Per-stage model routing; an empty value falls back to model_id
    classifier_model: str = os.getenv("CLASSIFIER_MODEL", "us.anthropic.claude-haiku-4-5-20251001-v1:0")
    planning_model: str = os.getenv("PLANNING_MODEL", "")
    execution_model: str = os.getenv("EXECUTION_MODEL", "")
    research_model: str = os.getenv("RESEARCH_MODEL", "")
    summary_model: str = os.getenv("SUMMARY_MODEL", "us.anthropic.claude-haiku-4-5-20251001-v1:0")

    def model_for(self, stage: str) -> str:
        """Resolve the model id for a pipeline stage (classifier, planning, execution, research, summary)."""
        return getattr(self, f"{stage}_model", "") or self.model_id


@dataclass
class SecurityConfig:
    """Sandbox policy: command whitelist, file size ceiling and denied system directories"""
    allowed_commands: List[str] = field(
        default_factory=lambda: _env_list("ALLOWED_COMMANDS", "dotnet,npm,pytest,python -m pytest")
    )
    file_size_limit_mb: int = int(os.getenv("FILE_SIZE_LIMIT_MB", "10"))
    denied_directories: List[str] = field(
        default_factory=lambda: _env_list("DENIED_DIRECTORIES", "/etc,/sys,/proc,/dev,/root")
    )

    @property
    def max_file_bytes(self) -> int:
        return self.file_size_limit_mb * 1024 * 1024


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "Bedrock Orchestrator"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    workspace_root: str = os.getenv("WORKSPACE_ROOT", ".")
    # Repository names under the workspace root; empty means "discover by scanning"
    repositories: List[str] = field(default_factory=lambda: _env_list("REPOSITORIES", ""))
    # Planning
    max_plan_steps: int = int(os.getenv("MAX_PLAN_STEPS", "15"))
    planning_uses_tools: bool = _env_bool("PLANNING_USES_TOOLS", "false")
    planning_max_iterations: int = int(os.getenv("PLANNING_MAX_ITERATIONS", "6"))
    # Agent loop budgets
    step_max_iterations: int = int(os.getenv("STEP_MAX_ITERATIONS", "10"))
    research_max_iterations: int = int(os.getenv("RESEARCH_MAX_ITERATIONS", "10"))
    rate_limit_default_delay: float = float(os.getenv("RATE_LIMIT_DEFAULT_DELAY", "5"))
    outcome_max_chars: int = int(os.getenv("OUTCOME_MAX_CHARS", "500"))
    # Below this confidence a Task/Question intent asks the user to clarify
    clarification_threshold: float = float(os.getenv("CLARIFICATION_THRESHOLD", "0.4"))
    # Session store
    session_ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
    session_max_entries: int = int(os.getenv("SESSION_MAX_ENTRIES", "256"))
    session_dir: str = os.getenv("SESSION_DIR", "")
    # Tools
    allow_git_push: bool = _env_bool("ALLOW_GIT_PUSH", "false")
    command_timeout: int = int(os.getenv("COMMAND_TIMEOUT", "300"))


# ============================================================
# Model Specifications -- Anthropic Claude on Bedrock
# All models support tool_use which is required for the agent loop.
# ============================================================
AVAILABLE_MODELS: List[Dict[str, Any]] = [
    {
        "id": "us.anthropic.claude-opus-4-5-20251101-v1:0",
        "base_id": "anthropic.claude-opus-4-5-20251101-v1:0",
        "name": "Claude Opus 4.5",
        "provider": "anthropic",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "us.anthropic.claude-sonnet-4-5-20250929-v1:0",
        "base_id": "anthropic.claude-sonnet-4-5-20250929-v1:0",
        "name": "Claude Sonnet 4.5",
        "provider": "anthropic",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "us.anthropic.claude-haiku-4-5-20251001-v1:0",
        "base_id": "anthropic.claude-haiku-4-5-20251001-v1:0",
        "name": "Claude Haiku 4.5",
        "provider": "anthropic",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "us.anthropic.claude-sonnet-4-20250514-v1:0",
        "base_id": "anthropic.claude-sonnet-4-20250514-v1:0",
        "name": "Claude Sonnet 4",
        "provider": "anthropic",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
]


# Create global config instances
aws_config = AWSConfig()
model_config = ModelConfig()
security_config = SecurityConfig()
app_config = AppConfig()


def get_model_by_id(model_id: str) -> Optional[Dict[str, Any]]:
    """Get model configuration by ID"""
    for model in AVAILABLE_MODELS:
        if model["id"] == model_id or model.get("base_id") == model_id:
            return model
    return None


def get_model_config(model_id: str) -> Dict[str, Any]:
    """Get the full configuration for a model. For unknown model IDs returns a minimal
    fallback dict. Callers should use .get(key, sensible_default) for any key they need."""
    model = get_model_by_id(model_id)
    if model:
        return model
    return {
        "id": model_id,
        "base_id": model_id,
        "name": model_id,
        "provider": "anthropic",
        "context_window": 200000,
        "max_output_tokens": 8192,
        "requires_profile": True,
    }


def get_max_output_tokens(model_id: str) -> int:
    return get_model_config(model_id).get("max_output_tokens", 4096)


def requires_inference_profile(model_id: str) -> bool:
    return get_model_config(model_id).get("requires_profile", False)


def get_credentials_info() -> str:
    if aws_config.has_profile():
        return f"Using AWS profile: {aws_config.profile_name}"
    elif aws_config.has_explicit_credentials():
        if aws_config.has_session_token():
            return "Using temporary credentials (with session token)"
        return "Using explicit credentials"
    return "Using default AWS credential chain"
