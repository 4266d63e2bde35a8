"""
Latency echo computations.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Union

Number = Union[int, float]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LatencyMeasurement:
    """Timestamps (epoch ms) collected for one latency probe."""

    client_send_time: int
    server_receive_time: int
    server_process_time: int

    @property
    def network_latency(self) -> int:
        return self.server_receive_time - self.client_send_time

    @property
    def server_processing_time(self) -> int:
        return self.server_process_time - self.server_receive_time

    @property
    def total_round_trip(self) -> int:
        return self.server_process_time - self.client_send_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientSendTime": self.client_send_time,
            "serverReceiveTime": self.server_receive_time,
            "serverProcessTime": self.server_process_time,
            "networkLatency": self.network_latency,
            "serverProcessingTime": self.server_processing_time,
            "totalRoundTrip": self.total_round_trip,
        }


def measure_latency(
    client_send_time: Number,
    server_receive_time: Number,
    clock: Callable[[], Number] = now_ms,
) -> LatencyMeasurement:
    """Stamp the processing time and build the measurement.

    All values are whole milliseconds so the network and processing deltas
    always sum to the round trip.
    """
    return LatencyMeasurement(
        client_send_time=int(round(client_send_time)),
        server_receive_time=int(round(server_receive_time)),
        server_process_time=int(round(clock())),
    )
