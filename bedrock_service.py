"""
Amazon Bedrock service module.
Model gateway used by every pipeline stage: one request in, text and tool calls out.
"""

import boto3
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Any
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError
from dataclasses import dataclass, field
from config import (
    aws_config,
    model_config,
    get_model_config,
    get_max_output_tokens,
    requires_inference_profile,
)


logger = logging.getLogger(__name__)

_RETRY_AFTER_RE = re.compile(r"retry after (\d+(?:\.\d+)?) seconds?", re.IGNORECASE)

_THROTTLE_CODES = {"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"}
_CREDENTIAL_CODES = {
    "ExpiredTokenException", "InvalidSignatureException",
    "UnrecognizedClientException", "AccessDeniedException",
}


class BedrockError(Exception):
    """Custom exception for Bedrock service errors"""
    pass


class RateLimitError(BedrockError):
    """The provider throttled the request. retry_after_seconds is the provider's hint, if any."""

    def __init__(self, message: str, retry_after_seconds: Optional[float] = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class BedrockCredentialsError(BedrockError):
    """Credentials are missing, expired or rejected. Retrying will not help."""
    pass


def parse_retry_after(text: str) -> Optional[float]:
    """Extract the 'retry after N seconds' hint from an error message."""
    if not text:
        return None
    m = _RETRY_AFTER_RE.search(text)
    return float(m.group(1)) if m else None


@dataclass
class GenerationConfig:
    """Configuration for a single generation request"""
    max_tokens: int = 8192
    temperature: Optional[float] = None
    throughput_mode: str = "cross-region"


@dataclass
class ToolUseBlock:
    """Represents a tool_use block from the response"""
    id: str = ""
    name: str = ""
    input: Dict = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Result from a generation request"""
    content: str = ""
    tool_uses: List[ToolUseBlock] = field(default_factory=list)
    stop_reason: Optional[str] = None


class ModelGateway(ABC):
    """Anything that can turn a conversation into a GenerationResult."""

    @abstractmethod
    def complete(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict]] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> GenerationResult:
        """Send one request. Raises RateLimitError when throttled, BedrockError otherwise."""


class BedrockService(ModelGateway):
    """
    Model gateway backed by Amazon Bedrock InvokeModel (Anthropic Messages API).
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        self.model_id = model_id or model_config.model_id
        self.region = region or aws_config.region

        self.client = client or self._create_client()
        logger.info(f"BedrockService initialized with model: {self.model_id}")

    def _create_client(self) -> Any:
        """Create and configure the Bedrock runtime client"""
        try:
            session_kwargs = {"region_name": self.region}

            if aws_config.has_profile():
                session_kwargs["profile_name"] = aws_config.profile_name
            elif aws_config.has_explicit_credentials():
                session_kwargs["aws_access_key_id"] = aws_config.access_key_id
                session_kwargs["aws_secret_access_key"] = aws_config.secret_access_key
                if aws_config.has_session_token():
                    session_kwargs["aws_session_token"] = aws_config.session_token

            session = boto3.Session(**session_kwargs)
            return session.client("bedrock-runtime")

        except (NoCredentialsError, PartialCredentialsError):
            raise BedrockCredentialsError("AWS credentials not configured.")
        except Exception as e:
            raise BedrockError(f"Failed to initialize Bedrock client: {e}")

    def _get_model_identifier(self, model_id: str, config: GenerationConfig) -> str:
        """Get the appropriate model identifier based on throughput mode"""
        if config.throughput_mode == "cross-region":
            if model_id.startswith(("us.", "eu.", "ap.")):
                return model_id
            elif requires_inference_profile(model_id):
                region_prefix = "eu" if self.region.startswith("eu-") else "us"
                return f"{region_prefix}.{model_id}"

        return get_model_config(model_id).get("base_id", model_id)

    def _format_request_body(
        self,
        messages: List[Dict],
        system_prompt: Optional[str],
        model_id: str,
        config: GenerationConfig,
        tools: Optional[List[Dict]] = None
    ) -> Dict[str, Any]:
        """Format the Anthropic Messages request body"""
        formatted_messages = []
        for msg in messages:
            if msg["role"] == "system":
                continue
            content = msg.get("content")
            # API requires non-empty content for every message
            if isinstance(content, str) and not content.strip():
                content = "(no content)"
            elif isinstance(content, list) and not content:
                content = [{"type": "text", "text": "(no content)"}]
            formatted_messages.append({"role": msg["role"], "content": content})

        body: Dict[str, Any] = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": min(config.max_tokens, get_max_output_tokens(model_id)),
            "messages": formatted_messages,
        }
        if config.temperature is not None:
            body["temperature"] = config.temperature
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = tools

        logger.debug(f"Request body keys: {list(body.keys())}")
        return body

    def _parse_response(self, response_body: Dict) -> GenerationResult:
        """Parse the Anthropic response body, extracting text and tool_use blocks"""
        result = GenerationResult()

        try:
            for block in response_body.get("content", []):
                block_type = block.get("type", "")
                if block_type == "text":
                    result.content += block.get("text", "")
                elif block_type == "tool_use":
                    result.tool_uses.append(ToolUseBlock(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        input=block.get("input", {}) or {},
                    ))

            result.stop_reason = response_body.get("stop_reason")

        except (KeyError, IndexError, AttributeError) as e:
            logger.error(f"Error parsing response: {e}")
            raise BedrockError(f"Failed to parse model response: {e}")

        return result

    def _translate_client_error(self, e: ClientError) -> BedrockError:
        error = e.response.get("Error", {})
        error_code = error.get("Code", "Unknown")
        error_message = error.get("Message", str(e))
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        logger.error(f"Bedrock API error: {error_code} - {error_message}")

        if error_code in _THROTTLE_CODES or status == 429:
            return RateLimitError(
                f"Bedrock throttled the request: {error_message}",
                retry_after_seconds=parse_retry_after(error_message),
            )
        if error_code in _CREDENTIAL_CODES:
            return BedrockCredentialsError(f"AWS credentials rejected ({error_code}). Please refresh.")
        return BedrockError(f"Bedrock API error: {error_message}")

    def complete(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict]] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> GenerationResult:
        """
        Generate a response using Amazon Bedrock.
        Returns a GenerationResult carrying both text and tool_use blocks.
        """
        current_model = model_id or self.model_id
        gen_config = config or GenerationConfig(max_tokens=model_config.max_tokens,
                                                temperature=model_config.temperature,
                                                throughput_mode=model_config.throughput_mode)

        model_identifier = self._get_model_identifier(current_model, gen_config)
        request_body = self._format_request_body(
            messages, system_prompt, current_model, gen_config, tools=tools
        )
        logger.info(f"Invoking model: {model_identifier}")

        try:
            response = self.client.invoke_model(
                modelId=model_identifier,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json"
            )
        except ClientError as e:
            raise self._translate_client_error(e)
        except (NoCredentialsError, PartialCredentialsError):
            raise BedrockCredentialsError("AWS credentials not configured.")

        try:
            response_body = json.loads(response["body"].read())
        except (KeyError, ValueError) as e:
            raise BedrockError(f"Malformed Bedrock response: {e}")
        return self._parse_response(response_body)

    def test_connection(self) -> tuple:
        """Test the Bedrock connection"""
        try:
            self.complete(
                [{"role": "user", "content": "Hi"}],
                model_id=model_config.classifier_model,
                config=GenerationConfig(max_tokens=10),
            )
            return True, "Connection successful"
        except Exception as e:
            return False, str(e)
