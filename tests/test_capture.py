"""
Capture Source Tests
====================

Filter construction, frame handling and startup failures. No real sockets
are opened.
"""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from macwatch.capture import CaptureError, CaptureSource, build_capture_filter, open_capture_sources

MAC_A = "aa:aa:aa:aa:aa:aa"


class TestCaptureFilter:

    def test_arp_only(self):
        assert build_capture_filter() == "(arp or rarp) and not vlan"

    def test_with_ndp(self):
        assert build_capture_filter(ndp_enabled=True) == "(arp or rarp or icmp6) and not vlan"

    def test_auxiliary_filter_is_anded(self):
        assert build_capture_filter("host 10.0.0.1") == "(arp or rarp) and not vlan and (host 10.0.0.1)"


class TestCaptureSource:

    def test_handle_packet_forwards_observation(self, arp_reply):
        sink = Mock()
        source = CaptureSource("eth0", sink)

        obs = source.handle_packet(arp_reply(ip="10.0.0.5", mac=MAC_A))

        sink.assert_called_once_with(obs)
        assert obs.interface == "eth0"
        assert source.frames_seen == 1

    def test_handle_packet_drops_unusable_frames(self, arp_reply, neighbor_advertisement):
        sink = Mock()
        source = CaptureSource("eth0", sink, ndp_enabled=False)

        source.handle_packet(arp_reply(op=1))
        source.handle_packet(neighbor_advertisement())

        sink.assert_not_called()
        assert source.frames_seen == 2

    def test_handle_packet_with_ndp(self, neighbor_advertisement):
        sink = Mock()
        source = CaptureSource("eth1", sink, ndp_enabled=True)

        obs = source.handle_packet(neighbor_advertisement(target="2001:db8::7"))

        assert obs.address == "2001:db8::7"
        sink.assert_called_once()

    def test_sink_error_does_not_escape(self, arp_reply):
        source = CaptureSource("eth0", Mock(side_effect=RuntimeError("queue closed")))

        assert source.handle_packet(arp_reply()) is None

    def test_open_failure_raises_capture_error(self):
        with patch("macwatch.capture.conf") as mock_conf:
            mock_conf.L2listen.side_effect = OSError("No such device")
            source = CaptureSource("nope0", Mock())

            with pytest.raises(CaptureError):
                source.start()

        assert not source.is_running

    def test_start_and_stop(self):
        with patch("macwatch.capture.conf") as mock_conf, \
                patch("macwatch.capture.AsyncSniffer") as mock_sniffer:
            source = CaptureSource("eth0", Mock(), bpf="host 10.0.0.1", promiscuous=True)
            source.start()

            mock_conf.L2listen.assert_called_once_with(
                iface="eth0",
                filter="(arp or rarp) and not vlan and (host 10.0.0.1)",
                promisc=True,
            )
            mock_sniffer.return_value.start.assert_called_once()
            assert source.is_running

            source.stop()

            mock_sniffer.return_value.stop.assert_called_once()
            mock_conf.L2listen.return_value.close.assert_called_once()
            assert not source.is_running

    def test_partial_open_failure_stops_started_sources(self):
        with patch("macwatch.capture.conf") as mock_conf, \
                patch("macwatch.capture.AsyncSniffer") as mock_sniffer:
            good_socket = Mock()
            mock_conf.L2listen.side_effect = [good_socket, OSError("No such device")]

            with pytest.raises(CaptureError):
                open_capture_sources(["eth0", "nope0"], Mock())

            good_socket.close.assert_called_once()
            mock_sniffer.return_value.stop.assert_called_once()
