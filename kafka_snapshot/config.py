"""
Connection settings shared by the kafka-python clients and by the
kafka-log-dirs command-config file.
"""
import ssl
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigurationError

SECURITY_PROTOCOLS = ("PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL")
SASL_MECHANISMS = ("PLAIN", "SCRAM-SHA-256", "SCRAM-SHA-512")

_JAAS_LOGIN_MODULES = {
    "PLAIN": "org.apache.kafka.common.security.plain.PlainLoginModule",
    "SCRAM-SHA-256": "org.apache.kafka.common.security.scram.ScramLoginModule",
    "SCRAM-SHA-512": "org.apache.kafka.common.security.scram.ScramLoginModule",
}


def parse_bootstrap_servers(value: Union[str, List[str]]) -> List[str]:
    """
    Accept "a:9092, b:9092" or a list and return the non-empty entries.
    """
    items = value.split(",") if isinstance(value, str) else value
    return [s.strip() for s in items if s and s.strip()]


class ConnectionSettings:
    """
    Holds broker connection details for one snapshot run.
    """

    def __init__(
        self,
        bootstrap_servers: Union[str, List[str]] = "localhost:9092",
        client_id: str = "kafka-snapshot",
        request_timeout_ms: int = 45000,  # keep > session_timeout_ms
        api_version_auto_timeout_ms: int = 8000,
        metadata_max_age_ms: int = 60000,
        security_protocol: Optional[str] = None,
        sasl_mechanism: str = "PLAIN",
        sasl_username: Optional[str] = None,
        sasl_password: Optional[str] = None,
        tls_ca_cert: Optional[str] = None,
        tls_client_cert: Optional[str] = None,
        tls_client_key: Optional[str] = None,
        tls_skip_verify: bool = False,
    ):
        self.bootstrap_servers = parse_bootstrap_servers(bootstrap_servers)
        self.client_id = client_id
        self.request_timeout_ms = request_timeout_ms
        self.api_version_auto_timeout_ms = api_version_auto_timeout_ms
        self.metadata_max_age_ms = metadata_max_age_ms
        self.security_protocol = (security_protocol or "PLAINTEXT").upper()
        self.sasl_mechanism = (sasl_mechanism or "PLAIN").upper()
        self.sasl_username = sasl_username
        self.sasl_password = sasl_password
        self.tls_ca_cert = tls_ca_cert
        self.tls_client_cert = tls_client_cert
        self.tls_client_key = tls_client_key
        self.tls_skip_verify = tls_skip_verify

    @property
    def sasl_enabled(self) -> bool:
        return self.security_protocol in ("SASL_PLAINTEXT", "SASL_SSL")

    @property
    def tls_enabled(self) -> bool:
        return self.security_protocol in ("SSL", "SASL_SSL")

    @property
    def requires_command_config(self) -> bool:
        return self.sasl_enabled or self.tls_enabled

    def validate(self) -> "ConnectionSettings":
        if not self.bootstrap_servers:
            raise ConfigurationError("at least one bootstrap server is required")
        if self.security_protocol not in SECURITY_PROTOCOLS:
            raise ConfigurationError(f"Unknown security protocol: {self.security_protocol}")
        if self.sasl_enabled:
            if self.sasl_mechanism not in SASL_MECHANISMS:
                raise ConfigurationError(f"Unknown SASL mechanism: {self.sasl_mechanism}")
            if not self.sasl_username or not self.sasl_password:
                raise ConfigurationError(
                    "SASL username and password are required when using SASL authentication"
                )
        if bool(self.tls_client_cert) != bool(self.tls_client_key):
            raise ConfigurationError(
                "Both tls_client_cert and tls_client_key must be provided for mTLS"
            )
        return self

    def client_kwargs(self) -> Dict[str, Any]:
        """
        Keyword arguments accepted by both KafkaAdminClient and KafkaConsumer.
        """
        kwargs: Dict[str, Any] = {
            "bootstrap_servers": self.bootstrap_servers,
            "client_id": self.client_id,
            "request_timeout_ms": self.request_timeout_ms,
            "api_version_auto_timeout_ms": self.api_version_auto_timeout_ms,
            "metadata_max_age_ms": self.metadata_max_age_ms,
            "security_protocol": self.security_protocol,
        }
        if self.sasl_enabled:
            kwargs["sasl_mechanism"] = self.sasl_mechanism
            kwargs["sasl_plain_username"] = self.sasl_username
            kwargs["sasl_plain_password"] = self.sasl_password
        if self.tls_enabled:
            kwargs["ssl_check_hostname"] = not self.tls_skip_verify
            if self.tls_ca_cert:
                kwargs["ssl_cafile"] = self.tls_ca_cert
            if self.tls_client_cert:
                kwargs["ssl_certfile"] = self.tls_client_cert
                kwargs["ssl_keyfile"] = self.tls_client_key
            if self.tls_skip_verify:
                kwargs["ssl_context"] = self.insecure_ssl_context()
        return kwargs

    def insecure_ssl_context(self) -> ssl.SSLContext:
        """
        TLS context that checks neither the hostname nor the certificate chain.
        kafka-python ignores the ssl_* file options once a context is given,
        so the client certificate is loaded here.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        if self.tls_client_cert:
            context.load_cert_chain(certfile=self.tls_client_cert, keyfile=self.tls_client_key)
        return context

    def command_config_lines(self) -> List[str]:
        """
        Java client properties for the --command-config file of the Kafka CLI
        tools. Empty when the connection needs neither SASL nor TLS.
        """
        if not self.requires_command_config:
            return []

        lines = [f"security.protocol={self.security_protocol}"]
        if self.sasl_enabled:
            lines.append(f"sasl.mechanism={self.sasl_mechanism}")
            module = _JAAS_LOGIN_MODULES[self.sasl_mechanism]
            lines.append(
                f'sasl.jaas.config={module} required '
                f'username="{self.sasl_username}" password="{self.sasl_password}";'
            )
        if self.tls_enabled:
            if self.tls_ca_cert:
                lines.append("ssl.truststore.type=PEM")
                lines.append(f"ssl.truststore.location={self.tls_ca_cert}")
            if self.tls_skip_verify:
                lines.append("ssl.endpoint.identification.algorithm=")
        return lines

    def describe(self) -> str:
        """
        Log-safe summary (no secrets).
        """
        text = f"servers={','.join(self.bootstrap_servers)} protocol={self.security_protocol}"
        if self.sasl_enabled:
            text += f" mechanism={self.sasl_mechanism} user={self.sasl_username}"
        return text
