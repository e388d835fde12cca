from fastapi import APIRouter, HTTPException, Request

from stocktracker.errors import StockNotFoundError

router = APIRouter()

APP_NAME = "Stock Price Tracker"
APP_VERSION = "1.0.0"


@router.get('/info')
def get_api_info():
    return {
        'application': APP_NAME,
        'version': APP_VERSION,
        'description': 'Real-time stock price tracking application',
        'endpoints': {
            'getAllStocks': '/api/stocks',
            'getStockBySymbol': '/api/stocks/{symbol}',
            'getTopGainers': '/api/stocks/gainers',
            'getTopLosers': '/api/stocks/losers',
            'webSocketEndpoint': '/ws/stocks',
        },
    }


@router.get('/stocks')
def get_all_stocks(request: Request):
    store = request.app.state.price_store
    return [row.model_dump(mode='json') for row in store.list_all()]


@router.get('/stocks/gainers')
def get_top_gainers(request: Request):
    store = request.app.state.price_store
    return [row.model_dump(mode='json') for row in store.top_gainers()]


@router.get('/stocks/losers')
def get_top_losers(request: Request):
    store = request.app.state.price_store
    return [row.model_dump(mode='json') for row in store.top_losers()]


@router.get('/stocks/{symbol}')
def get_stock(symbol: str, request: Request):
    store = request.app.state.price_store
    try:
        row = store.require(symbol)
    except StockNotFoundError as exc:
        raise HTTPException(status_code=404, detail='STOCK_NOT_FOUND') from exc
    return row.model_dump(mode='json')


@router.get('/metrics/simulation')
def simulation_metrics(request: Request):
    metrics = request.app.state.simulator.metrics()
    metrics['broadcast'] = request.app.state.broadcaster.metrics()
    return metrics
