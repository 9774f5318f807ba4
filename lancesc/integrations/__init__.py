from .anndata import read_anndata, write_anndata

__all__ = ["read_anndata", "write_anndata"]
