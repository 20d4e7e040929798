"""Tests for GqlWsClient WebSocket wrapper and the dial helper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from team_gql.errors import (
    ConnectFailed,
    ConnectionLost,
    InvalidEndpoint,
    ProtocolError,
    ReadTimeout,
    WriteTimeout,
)
from team_gql.ws import connect_websocket
from team_gql.ws_client import GqlWsClient

ADDRESS = "wss://x.appsync-realtime-api.us-east-1.amazonaws.com/graphql"
SUBPROTOCOLS = ("graphql-ws", "header-e30")


async def _connected_client(mock_ws: AsyncMock) -> GqlWsClient:
    with patch("team_gql.ws_client.connect_websocket", return_value=mock_ws):
        client = GqlWsClient()
        await client.connect(ADDRESS, subprotocols=SUBPROTOCOLS)
    return client


class TestConnectWebsocket:
    """Tests for connect_websocket()."""

    @pytest.mark.asyncio
    async def test_offers_all_subprotocols(self):
        """Test every sub-protocol is offered in one handshake."""
        sentinel = object()

        async def _connected():
            return sentinel

        with patch(
            "team_gql.ws.websockets.connect",
            side_effect=lambda *args, **kwargs: _connected(),
        ) as mock_connect:
            result = await connect_websocket(ADDRESS, subprotocols=SUBPROTOCOLS)

        assert result is sentinel
        args, kwargs = mock_connect.call_args
        assert args == (ADDRESS,)
        assert kwargs["subprotocols"] == list(SUBPROTOCOLS)
        assert kwargs["ping_interval"] == 20

    @pytest.mark.asyncio
    async def test_timeout_maps_to_connect_failed(self):
        """Test a dial exceeding the timeout raises ConnectFailed."""
        with patch(
            "team_gql.ws.websockets.connect",
            side_effect=lambda *args, **kwargs: asyncio.sleep(10),
        ):
            with pytest.raises(ConnectFailed, match="timed out"):
                await connect_websocket(
                    ADDRESS, subprotocols=SUBPROTOCOLS, timeout=0.01
                )

    @pytest.mark.asyncio
    async def test_rejected_upgrade_maps_to_connect_failed(self):
        """Test a refused upgrade raises ConnectFailed."""
        with patch(
            "team_gql.ws.websockets.connect",
            side_effect=InvalidHandshake("401"),
        ):
            with pytest.raises(ConnectFailed, match="upgrade rejected"):
                await connect_websocket(ADDRESS, subprotocols=SUBPROTOCOLS)

    @pytest.mark.asyncio
    async def test_network_error_maps_to_connect_failed(self):
        """Test socket errors raise ConnectFailed."""
        with patch(
            "team_gql.ws.websockets.connect",
            side_effect=OSError("Connection refused"),
        ):
            with pytest.raises(ConnectFailed):
                await connect_websocket(ADDRESS, subprotocols=SUBPROTOCOLS)

    @pytest.mark.asyncio
    async def test_invalid_uri_maps_to_invalid_endpoint(self):
        """Test an unusable address raises InvalidEndpoint."""
        with patch(
            "team_gql.ws.websockets.connect",
            side_effect=InvalidURI("nope", "bad scheme"),
        ):
            with pytest.raises(InvalidEndpoint):
                await connect_websocket("nope", subprotocols=SUBPROTOCOLS)


class TestGqlWsClientConnect:
    """Tests for GqlWsClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        """Test successful WebSocket connection."""
        mock_ws = AsyncMock()

        with patch(
            "team_gql.ws_client.connect_websocket",
            return_value=mock_ws,
        ) as mock_connect:
            client = GqlWsClient()
            await client.connect(ADDRESS, subprotocols=SUBPROTOCOLS)

            mock_connect.assert_called_once_with(
                ADDRESS,
                subprotocols=SUBPROTOCOLS,
                ping_interval=20,
                timeout=15.0,
            )
            assert client._ws is mock_ws
            assert client.is_connected

    @pytest.mark.asyncio
    async def test_connect_propagates_errors(self):
        """Test that connection errors are propagated."""
        with patch(
            "team_gql.ws_client.connect_websocket",
            side_effect=ConnectFailed("Connection failed"),
        ):
            client = GqlWsClient()
            with pytest.raises(ConnectFailed, match="Connection failed"):
                await client.connect(ADDRESS, subprotocols=SUBPROTOCOLS)
            assert not client.is_connected

    @pytest.mark.asyncio
    async def test_subprotocol_reports_server_choice(self):
        """Test the negotiated sub-protocol is exposed."""
        mock_ws = AsyncMock()
        mock_ws.subprotocol = "graphql-ws"

        client = await _connected_client(mock_ws)

        assert client.subprotocol == "graphql-ws"


class TestGqlWsClientClose:
    """Tests for GqlWsClient.close()."""

    @pytest.mark.asyncio
    async def test_close_connected(self):
        """Test closing a connected client."""
        mock_ws = AsyncMock()
        client = await _connected_client(mock_ws)

        await client.close()

        mock_ws.close.assert_called_once()
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_close_twice_closes_once(self):
        """Test repeated close only tears the socket down once."""
        mock_ws = AsyncMock()
        client = await _connected_client(mock_ws)

        await client.close()
        await client.close()

        mock_ws.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_not_connected(self):
        """Test closing when not connected (no error)."""
        client = GqlWsClient()
        # Should not raise
        await client.close()

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        """Test writes after close fail with ConnectionLost."""
        mock_ws = AsyncMock()
        client = await _connected_client(mock_ws)
        await client.close()

        with pytest.raises(ConnectionLost, match="closed"):
            await client.send_json({"type": "ka"})


class TestGqlWsClientSendJson:
    """Tests for GqlWsClient.send_json()."""

    @pytest.mark.asyncio
    async def test_send_json_success(self):
        """Test sending JSON payload."""
        mock_ws = AsyncMock()
        client = await _connected_client(mock_ws)

        await client.send_json({"type": "connection_init"})

        mock_ws.send.assert_called_once_with('{"type": "connection_init"}')

    @pytest.mark.asyncio
    async def test_send_json_not_connected(self):
        """Test send_json raises when not connected."""
        client = GqlWsClient()
        with pytest.raises(ConnectionLost, match="not connected"):
            await client.send_json({"type": "test"})

    @pytest.mark.asyncio
    async def test_send_json_timeout(self):
        """Test a stalled write raises WriteTimeout."""
        mock_ws = AsyncMock()

        async def _stall(_data):
            await asyncio.sleep(10)

        mock_ws.send.side_effect = _stall
        client = await _connected_client(mock_ws)

        with pytest.raises(WriteTimeout):
            await client.send_json({"type": "start"}, timeout=0.01)

    @pytest.mark.asyncio
    async def test_send_json_connection_closed(self):
        """Test a write on a dropped connection raises ConnectionLost."""
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = ConnectionClosed(None, None)
        client = await _connected_client(mock_ws)

        with pytest.raises(ConnectionLost, match="writing"):
            await client.send_json({"type": "start"})


class TestGqlWsClientReceiveJson:
    """Tests for GqlWsClient.receive_json()."""

    @pytest.mark.asyncio
    async def test_receive_json_object(self):
        """Test a text frame is decoded into a dict."""
        mock_ws = AsyncMock()
        mock_ws.recv.return_value = '{"type": "ka"}'
        client = await _connected_client(mock_ws)

        assert await client.receive_json() == {"type": "ka"}

    @pytest.mark.asyncio
    async def test_receive_skips_binary_frames(self):
        """Test binary frames are skipped."""
        mock_ws = AsyncMock()
        mock_ws.recv.side_effect = [b"\x00\x01", '{"type": "connection_ack"}']
        client = await _connected_client(mock_ws)

        assert await client.receive_json() == {"type": "connection_ack"}
        assert mock_ws.recv.call_count == 2

    @pytest.mark.asyncio
    async def test_receive_timeout(self):
        """Test a silent connection raises ReadTimeout."""
        mock_ws = AsyncMock()

        async def _silent():
            await asyncio.sleep(10)

        mock_ws.recv.side_effect = _silent
        client = await _connected_client(mock_ws)

        with pytest.raises(ReadTimeout):
            await client.receive_json(timeout=0.01)

    @pytest.mark.asyncio
    async def test_receive_connection_closed(self):
        """Test a dropped connection raises ConnectionLost."""
        mock_ws = AsyncMock()
        mock_ws.recv.side_effect = ConnectionClosed(None, None)
        client = await _connected_client(mock_ws)

        with pytest.raises(ConnectionLost, match="reading"):
            await client.receive_json()

    @pytest.mark.asyncio
    async def test_receive_not_connected(self):
        """Test receive_json raises when not connected."""
        client = GqlWsClient()
        with pytest.raises(ConnectionLost):
            await client.receive_json()


class TestDecodeJson:
    """Tests for GqlWsClient.decode_json()."""

    def test_invalid_json(self):
        """Test undecodable text raises ProtocolError."""
        with pytest.raises(ProtocolError, match="not valid JSON"):
            GqlWsClient.decode_json("{not json")

    def test_non_object(self):
        """Test a JSON array raises ProtocolError."""
        with pytest.raises(ProtocolError, match="not a JSON object"):
            GqlWsClient.decode_json("[1, 2]")
