"""Tracked symbol listing."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter

from marketdata.core.dependencies import Container
from marketdata.schemas.market import SymbolOut
from marketdata.symbols import display_name

router = APIRouter()


@router.get("/symbols", response_model=List[SymbolOut])
async def list_symbols(container: Container) -> List[SymbolOut]:
    return [
        SymbolOut(symbol=symbol, display_name=display_name(symbol))
        for symbol in container.settings.tracked_symbols
    ]
