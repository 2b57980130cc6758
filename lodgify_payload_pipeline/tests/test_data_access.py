"""
Tests unitaires pour interfaces/data_access.py (Supabase mocké).
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import aiohttp
import pytest

from lodgify_payload_pipeline.config.settings import Settings
from lodgify_payload_pipeline.interfaces import data_access
from lodgify_payload_pipeline.interfaces.data_access import (
    SupabaseOverrideSource,
    SupabasePropertyCatalog,
    SupabaseRpcPriceCalculator,
    get_supabase_client,
)


def _query_returning(mock_supabase_client, rows):
    """Branche une chaîne select/eq/gte/lte/order qui retourne `rows`."""
    mock_query = Mock()
    for method in ("select", "eq", "gte", "lte", "order"):
        getattr(mock_query, method).return_value = mock_query
    mock_query.execute.return_value.data = rows
    mock_supabase_client.table.return_value = mock_query
    return mock_query


def _mock_response(json_data=None, raise_error=None):
    mock_response = AsyncMock()
    mock_response.status = 200
    mock_response.json = AsyncMock(return_value=json_data)
    mock_response.raise_for_status = Mock(side_effect=raise_error)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)
    return mock_response


class TestSupabaseClient:
    """Tests pour get_supabase_client."""

    def test_missing_configuration(self, monkeypatch):
        monkeypatch.setattr(data_access, "_supabase_client", None)

        with pytest.raises(RuntimeError):
            get_supabase_client(Settings())

    def test_client_is_cached(self, monkeypatch, settings):
        monkeypatch.setattr(data_access, "_supabase_client", None)

        with patch("lodgify_payload_pipeline.interfaces.data_access.create_client") as mock_create:
            first = get_supabase_client(settings)
            second = get_supabase_client(settings)

        mock_create.assert_called_once_with("https://mock.supabase.co", "mock_key")
        assert first is second


class TestSupabasePropertyCatalog:
    """Tests pour SupabasePropertyCatalog."""

    @pytest.mark.asyncio
    async def test_get_all_maps_rows(self, mock_supabase_client, settings):
        mock_query = _query_returning(mock_supabase_client, [
            {"id": "uuid-1", "lodgify_property_id": 327020, "lodgify_room_type_id": "398340", "base_price_per_day": "100.5"},
            {"id": "uuid-2", "lodgify_property_id": None, "lodgify_room_type_id": None, "base_price_per_day": None},
        ])
        catalog = SupabasePropertyCatalog(client=mock_supabase_client, settings=settings)

        properties = await catalog.get_all()

        mock_supabase_client.table.assert_called_once_with("properties")
        mock_query.order.assert_called_once_with("lodgify_property_id", desc=False)
        assert properties[0].external_property_id == "327020"
        assert properties[0].external_room_type_id == 398340
        assert properties[0].base_price_per_day == 100.5
        assert properties[0].is_exportable()
        assert not properties[1].is_exportable()
        assert properties[1].base_price_per_day == 0.0

    @pytest.mark.asyncio
    async def test_empty_response(self, mock_supabase_client, settings):
        _query_returning(mock_supabase_client, None)
        catalog = SupabasePropertyCatalog(client=mock_supabase_client, settings=settings)

        assert await catalog.get_all() == []


class TestSupabaseOverrideSource:
    """Tests pour SupabaseOverrideSource."""

    @pytest.mark.asyncio
    async def test_active_overrides_in_range(self, mock_supabase_client, settings):
        mock_query = _query_returning(mock_supabase_client, [
            {"property_id": "327020", "override_date": "2025-07-10T00:00:00", "override_price": "120.00", "is_active": True},
        ])
        source = SupabaseOverrideSource(client=mock_supabase_client, settings=settings)

        overrides = await source.get_active_overrides("327020", "2025-07-01", "2025-07-31")

        mock_supabase_client.table.assert_called_once_with("price_overrides")
        mock_query.eq.assert_any_call("is_active", True)
        mock_query.gte.assert_called_once_with("override_date", "2025-07-01")
        mock_query.lte.assert_called_once_with("override_date", "2025-07-31")
        assert len(overrides) == 1
        assert overrides[0].override_date == "2025-07-10"
        assert overrides[0].override_price == 120.0


class TestSupabaseRpcPriceCalculator:
    """Tests pour SupabaseRpcPriceCalculator."""

    def test_requires_configuration(self):
        with pytest.raises(RuntimeError):
            SupabaseRpcPriceCalculator(Settings())

    @pytest.mark.asyncio
    async def test_pricing_preview_posts_rpc(self, settings):
        rows = [{"check_date": "2025-07-01", "final_price_per_night": 100.0}]
        mock_session = Mock()
        mock_session.post.return_value = _mock_response(rows)

        calculator = SupabaseRpcPriceCalculator(settings)
        calculator.session = mock_session

        result = await calculator.get_pricing_preview("327020", "2025-07-01", "2025-07-31", 3)

        assert result == rows
        args, kwargs = mock_session.post.call_args
        assert args[0] == "https://mock.supabase.co/rest/v1/rpc/preview_pricing_calendar"
        assert kwargs["json"] == {
            "p_property_id": "327020",
            "p_start_date": "2025-07-01",
            "p_end_date": "2025-07-31",
            "p_nights": 3,
        }
        assert kwargs["headers"]["Authorization"] == "Bearer mock_key"
        assert kwargs["timeout"].total == 0.2

    @pytest.mark.asyncio
    async def test_calculate_price_wraps_single_object(self, settings):
        mock_session = Mock()
        mock_session.post.return_value = _mock_response({"final_price_per_night": 110.0})

        calculator = SupabaseRpcPriceCalculator(settings)
        calculator.session = mock_session

        result = await calculator.calculate_price("327020", "2025-07-01", 3)

        assert result == [{"final_price_per_night": 110.0}]
        assert mock_session.post.call_args.kwargs["json"]["p_check_date"] == "2025-07-01"

    @pytest.mark.asyncio
    async def test_null_response(self, settings):
        mock_session = Mock()
        mock_session.post.return_value = _mock_response(None)

        calculator = SupabaseRpcPriceCalculator(settings)
        calculator.session = mock_session

        assert await calculator.calculate_price("327020", "2025-07-01", 3) == []

    @pytest.mark.asyncio
    async def test_http_error_is_raised(self, settings):
        error = aiohttp.ClientResponseError(request_info=Mock(), history=(), status=500, message="boom")
        mock_session = Mock()
        mock_session.post.return_value = _mock_response(raise_error=error)

        calculator = SupabaseRpcPriceCalculator(settings)
        calculator.session = mock_session

        with pytest.raises(aiohttp.ClientResponseError):
            await calculator.get_pricing_preview("327020", "2025-07-01", "2025-07-31", 3)

    @pytest.mark.asyncio
    async def test_timeout_is_raised(self, settings):
        mock_response = _mock_response()
        mock_response.__aenter__ = AsyncMock(side_effect=asyncio.TimeoutError())
        mock_session = Mock()
        mock_session.post.return_value = mock_response

        calculator = SupabaseRpcPriceCalculator(settings)
        calculator.session = mock_session

        with pytest.raises(asyncio.TimeoutError):
            await calculator.calculate_price("327020", "2025-07-01", 3)

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, settings):
        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session_class.return_value.close = AsyncMock()

            async with SupabaseRpcPriceCalculator(settings) as calculator:
                assert calculator.session is mock_session_class.return_value

            mock_session_class.return_value.close.assert_awaited_once()
            assert calculator.session is None
