"""
Thin adapter over kafka-python's admin and consumer clients.

Returns plain Python values so the aggregation code never handles protocol
structs. Calls that the snapshot cannot do without (topic and group listing)
let KafkaError propagate; the rest are left to the caller's warning policy.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from kafka import KafkaConsumer, TopicPartition
from kafka.admin import ConfigResource, ConfigResourceType, KafkaAdminClient
from kafka.errors import KafkaError, KafkaTimeoutError, for_code

from .config import ConnectionSettings
from .errors import ClusterConnectionError
from .models import GroupDescription, PartitionState

logger = logging.getLogger(__name__)

# DescribeConfigs v1+ config_source values that are NOT broker defaults.
_TOPIC_CONFIG_SOURCES = (1,)  # DYNAMIC_TOPIC_CONFIG

LogDirPartition = Tuple[int, int, int, bool]
LogDirTopic = Tuple[str, List[LogDirPartition]]
LogDirEntry = Tuple[int, str, List[LogDirTopic]]


class KafkaInspector:
    """
    Holds broker connection details and exposes the read-only queries a
    snapshot run needs.
    """

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings.validate()
        self.bootstrap_servers = settings.bootstrap_servers
        self.client_id = settings.client_id
        self._consumer: Optional[KafkaConsumer] = None
        try:
            self._admin = KafkaAdminClient(**settings.client_kwargs())
        except KafkaError as e:
            raise ClusterConnectionError(
                f"Error creating cluster admin for {settings.describe()}: {e}"
            ) from e

    def __enter__(self) -> "KafkaInspector":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._consumer is not None:
            try:
                self._consumer.close()
            except Exception as e:
                logger.warning(f"Error closing consumer: {e}")
            self._consumer = None
        try:
            self._admin.close()
        except Exception as e:
            logger.warning(f"Error closing admin client: {e}")

    # ---------- Brokers ----------

    def list_brokers(self) -> List[Tuple[int, str]]:
        """
        Return (node_id, "host:port") for every broker in the metadata view.
        """
        meta = self._admin.describe_cluster()
        brokers = [
            (int(b["node_id"]), f"{b['host']}:{b['port']}")
            for b in meta.get("brokers", [])
        ]
        return sorted(brokers)

    def broker_version(self, node_id: int) -> str:
        """
        Best-effort broker version via ApiVersions probing.
        """
        try:
            version = self._admin._client.check_version(node_id=node_id)
        except Exception as e:
            logger.debug(f"Version probe failed for broker {node_id}: {e}")
            return "Unknown"
        if not version:
            return "Unknown"
        return "Kafka " + ".".join(str(v) for v in version)

    def describe_log_dirs(self, node_id: int) -> List[LogDirEntry]:
        """
        Send a DescribeLogDirs v0 request (all topics) to one broker.

        Returns [(error_code, log_dir, [(topic, [(partition, size, offset_lag, is_future)])])].
        """
        from kafka.protocol.admin import DescribeLogDirsRequest

        request = DescribeLogDirsRequest[0](topics=None)
        response = self._send_to_broker(node_id, request)
        entries: List[LogDirEntry] = []
        for error_code, log_dir, topics in response.log_dirs:
            entries.append(
                (
                    error_code,
                    log_dir,
                    [(name, [tuple(p) for p in partitions]) for name, partitions in topics],
                )
            )
        return entries

    def _send_to_broker(self, node_id: int, request: Any) -> Any:
        client = self._admin._client
        timeout_ms = self.settings.request_timeout_ms
        deadline = time.time() + timeout_ms / 1000.0
        while not client.ready(node_id):
            if time.time() >= deadline:
                raise KafkaTimeoutError(f"broker {node_id} not ready after {timeout_ms} ms")
            client.poll(timeout_ms=200)

        future = client.send(node_id, request)
        while not future.is_done:
            if time.time() >= deadline:
                raise KafkaTimeoutError(f"no response from broker {node_id} after {timeout_ms} ms")
            client.poll(future=future, timeout_ms=200)
        if future.failed():
            raise future.exception
        return future.value

    # ---------- Topics ----------

    def list_topics(self) -> Dict[str, Tuple[int, int]]:
        """
        Return {topic: (partition_count, replication_factor)}, internal topics included.
        """
        topics: Dict[str, Tuple[int, int]] = {}
        for t in self._admin.describe_topics():
            parts = t.get("partitions", []) or []
            rf = len(parts[0].get("replicas", [])) if parts else 0
            topics[t["topic"]] = (len(parts), rf)
        return topics

    def describe_topic_partitions(self, topic: str) -> List[PartitionState]:
        topics_meta = self._admin.describe_topics([topic])
        if not topics_meta:
            return []
        meta = topics_meta[0]
        error_code = meta.get("error_code", 0)
        if error_code:
            raise for_code(error_code)(f"describe_topics({topic})")

        return [
            PartitionState(
                partition=p["partition"],
                leader=p.get("leader", -1),
                replicas=tuple(p.get("replicas", []) or []),
                isr=tuple(p.get("isr", []) or []),
            )
            for p in meta.get("partitions", []) or []
        ]

    def topic_configs(self, topic: str) -> Dict[str, str]:
        """
        Non-default, non-empty config entries of a topic.
        Handles both 4-tuple and 5-tuple resource responses.
        """
        responses = self._admin.describe_configs(
            [ConfigResource(ConfigResourceType.TOPIC, topic)],
            include_synonyms=False,
        )

        cfg: Dict[str, str] = {}
        resp_list = responses if isinstance(responses, list) else [responses]
        for resp in resp_list:
            for res in getattr(resp, "resources", []) or []:
                # (err_code, rtype, rname, configs) OR (err_code, err_msg, rtype, rname, configs)
                if len(res) >= 5:
                    err, _err_msg, _rtype, _rname, configs = res[:5]
                else:
                    err, _rtype, _rname, configs = res[:4]
                if err:
                    raise for_code(err)(f"describe_configs({topic})")

                for entry in configs or []:
                    name, value = entry[0], entry[1]
                    if value in (None, "") or _is_default_entry(entry):
                        continue
                    cfg[str(name)] = str(value)
        return cfg

    def partition_end_offsets(self, topic: str, partition_count: int) -> Dict[int, int]:
        """
        High-water mark of every partition of a topic.

        If the batched lookup fails, partitions are retried one by one and a
        partition that still fails is left out of the result.
        """
        tps = [TopicPartition(topic, p) for p in range(partition_count)]
        if not tps:
            return {}
        consumer = self._offsets_consumer()
        try:
            ends = consumer.end_offsets(tps)
        except KafkaError as e:
            logger.warning(f"End offsets of {topic} failed, retrying per partition: {e}")
            ends = {}
            for tp in tps:
                try:
                    ends.update(consumer.end_offsets([tp]))
                except KafkaError as pe:
                    logger.warning(f"Could not get end offset of {topic}-{tp.partition}: {pe}")
        return {tp.partition: int(offset) for tp, offset in ends.items()}

    def _offsets_consumer(self) -> KafkaConsumer:
        if self._consumer is None:
            kwargs = self.settings.client_kwargs()
            kwargs["client_id"] = f"{self.client_id}-wmarks"
            self._consumer = KafkaConsumer(
                group_id=None,  # Don't join a consumer group
                enable_auto_commit=False,
                consumer_timeout_ms=5000,
                **kwargs,
            )
        return self._consumer

    # ---------- Consumer groups ----------

    def list_consumer_groups(self) -> List[str]:
        groups = self._admin.list_consumer_groups()  # [(group_id, protocol_type)]
        return [g[0] for g in groups]

    def describe_consumer_group(self, group: str) -> GroupDescription:
        """
        State, member count and the union of topics assigned to members.
        A member whose assignment cannot be decoded is logged and skipped.
        """
        descriptions = self._admin.describe_consumer_groups([group])
        if not descriptions:
            return GroupDescription(group=group, state="", members=0, topics=())
        desc = descriptions[0]
        if desc.error_code:
            raise for_code(desc.error_code)(f"describe_consumer_groups({group})")

        topics = set()
        for member in desc.members:
            try:
                topics.update(_assigned_topics(member.member_assignment))
            except Exception as e:
                logger.warning(
                    f"Could not decode assignment of member {member.member_id} in group '{group}': {e}"
                )
        return GroupDescription(
            group=group,
            state=desc.state,
            members=len(desc.members),
            topics=tuple(sorted(topics)),
        )

    def list_group_offsets(
        self, group: str, topic: str, partition_count: Optional[int] = None
    ) -> Dict[int, int]:
        """
        Committed offsets of a group for one topic; partitions without a
        commit (offset -1) are left out.

        With a partition count the fetch is scoped to that topic's partitions,
        otherwise every committed offset of the group is fetched and filtered.
        """
        partitions = None
        if partition_count:
            partitions = [TopicPartition(topic, p) for p in range(partition_count)]
        offsets = self._admin.list_consumer_group_offsets(group, partitions=partitions)
        return {
            tp.partition: int(meta.offset)
            for tp, meta in offsets.items()
            if tp.topic == topic and meta is not None and meta.offset >= 0
        }


def _is_default_entry(entry: Tuple) -> bool:
    # v0: (name, value, read_only, is_default, is_sensitive)
    # v1+: (name, value, read_only, config_source, is_sensitive, synonyms)
    if len(entry) < 4:
        return False
    flag = entry[3]
    if isinstance(flag, bool):
        return flag
    return flag not in _TOPIC_CONFIG_SOURCES


def _assigned_topics(assignment: Any) -> List[str]:
    if not assignment:
        return []
    if isinstance(assignment, (bytes, bytearray)):
        raise ValueError(f"undecoded assignment payload ({len(assignment)} bytes)")
    return [topic for topic, _partitions in assignment.assignment]
