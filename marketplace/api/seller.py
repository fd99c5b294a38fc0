from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.dependencies import get_current_seller
from marketplace.models import User, get_db
from marketplace.schemas.seller import SellerStatsResponse
from marketplace.services.seller_stats import get_seller_stats

router = APIRouter()


@router.get(
    "/stats",
    response_model=SellerStatsResponse,
    summary="Sales rollup for the current seller",
)
def seller_stats(
    seller: Annotated[User, Depends(get_current_seller)],
    db: Annotated[Session, Depends(get_db)],
):
    return SellerStatsResponse(**get_seller_stats(db, seller.id))
