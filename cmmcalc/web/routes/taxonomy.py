"""Taxonomy routes.

Routes:
- GET /cmm/taxonomy            - Full active L1 -> L2 -> L3 tree
- GET /cmm/taxonomy/{l1_code}  - One L1 subtree (404 if unknown)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.connection import get_db
from cmmcalc.models import TaxonomySubtree, TaxonomyTree
from cmmcalc.taxonomy.catalog import TaxonomyCatalog

router = APIRouter(prefix="/cmm/taxonomy", tags=["taxonomy"])


@router.get("", response_model=TaxonomyTree)
async def get_taxonomy(db: AsyncSession = Depends(get_db)):
    return await TaxonomyCatalog(db).get_taxonomy_tree()


@router.get("/{l1_code}", response_model=TaxonomySubtree)
async def get_taxonomy_subtree(l1_code: str, db: AsyncSession = Depends(get_db)):
    return await TaxonomyCatalog(db).get_subtree(l1_code)
