# SPDX-License-Identifier: BSD-3-Clause
import argparse
import logging

import numpy as np
import pandas as pd

from ._downsample import markers_from_frame
from ._utils import get_logger
from .config import DeconvolutionConfig
from .model import ReferenceDataset, TrainedModel, train_model

logger = logging.getLogger(__name__)


def _load_table(path, index_col=0):
    sep = "," if path.lower().endswith(".csv") else "\t"
    df = pd.read_csv(path, sep=sep, index_col=index_col)
    if index_col is not None:
        df.index = df.index.astype(str)
    return df


def save_model(model: TrainedModel, path):
    np.savez_compressed(
        path,
        W=model.W, H=model.H, profiles=model.profiles,
        genes=np.asarray(model.genes, dtype=str),
        cell_types=np.asarray(model.cell_types, dtype=str),
        labels=np.asarray(model.labels, dtype=str),
        method=np.asarray(model.method), transf=np.asarray(model.transf),
        theta=np.asarray(model.theta, dtype=float),
        converged=np.asarray(model.converged, dtype=bool),
        n_iter=np.asarray(model.n_iter, dtype=int),
        loss_curve=np.asarray(model.loss_curve, dtype=float),
    )


def load_model(path) -> TrainedModel:
    with np.load(path) as f:
        return TrainedModel(
            W=f["W"], H=f["H"], profiles=f["profiles"],
            genes=tuple(f["genes"].tolist()),
            cell_types=tuple(f["cell_types"].tolist()),
            labels=tuple(f["labels"].tolist()),
            method=str(f["method"]), transf=str(f["transf"]),
            theta=float(f["theta"]), converged=bool(f["converged"]),
            n_iter=int(f["n_iter"]), loss_curve=tuple(f["loss_curve"].tolist()),
        )


def build_parser():
    p = argparse.ArgumentParser(prog="nmfspot", description="NMF-based spatial spot deconvolution")
    p.add_argument("--verbose", type=int, default=0)
    sub = p.add_subparsers(dest="cmd", required=True)

    train = sub.add_parser("train", help="Train a topic model on a reference atlas")
    train.add_argument("--counts", required=True, help="Genes x cells table (.csv/.tsv)")
    train.add_argument("--obs", required=True, help="Cell metadata table, indexed by cell")
    train.add_argument("--markers", required=True, help="Marker table with cluster/gene columns")
    train.add_argument("--marker-weight", default=None, help="Column used to rank markers")
    train.add_argument("--cluster-field", default="cluster")
    train.add_argument("--cl-n", type=int, default=100)
    train.add_argument("--hvg", type=int, default=0)
    train.add_argument("--ntop", type=int, default=None)
    train.add_argument("--transf", choices=["uv", "none"], default="uv")
    train.add_argument("--method", choices=["standard", "nonsmooth"], default="nonsmooth")
    train.add_argument("--theta", type=float, default=0.5)
    train.add_argument("--init", choices=["random", "informed"], default="random")
    train.add_argument("--n-init", type=int, default=1)
    train.add_argument("--max-iter", type=int, default=1000)
    train.add_argument("--tol", type=float, default=1e-6)
    train.add_argument("--seed", type=int, required=True)
    train.add_argument("--out", required=True, help="Output .npz file")

    dec = sub.add_parser("deconvolve", help="Deconvolve spots with a trained model")
    dec.add_argument("--model", required=True, help="Model .npz written by 'train'")
    dec.add_argument("--spots", required=True, help="Genes x spots table (.csv/.tsv)")
    dec.add_argument("--min-cont", type=float, default=0.0)
    dec.add_argument("--n-jobs", type=int, default=1)
    dec.add_argument("--out", required=True, help="Output proportions table (.csv/.tsv)")
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    get_logger("nmfspot", logging.INFO if args.verbose > 0 else logging.WARNING)

    if args.cmd == "train":
        config = DeconvolutionConfig(
            cl_n=args.cl_n, hvg=args.hvg, ntop=args.ntop, transf=args.transf,
            method=args.method, theta=args.theta, max_iter=args.max_iter, tol=args.tol,
            init=args.init, n_init=args.n_init, cluster_field=args.cluster_field,
        )
        reference = ReferenceDataset(counts=_load_table(args.counts), obs=_load_table(args.obs))
        markers = markers_from_frame(_load_table(args.markers, index_col=None),
                                     weight_col=args.marker_weight)
        model = train_model(reference, markers, config, rng=args.seed, verbose=args.verbose)
        save_model(model, args.out)
        logger.info("wrote model with %d topics to %s", model.n_topics, args.out)

    elif args.cmd == "deconvolve":
        model = load_model(args.model)
        spots = _load_table(args.spots)
        result = model.deconvolve(spots, min_cont=args.min_cont, n_jobs=args.n_jobs)
        table = result.proportions.assign(valid=result.valid, converged=result.converged)
        sep = "," if args.out.lower().endswith(".csv") else "\t"
        table.to_csv(args.out, sep=sep, index_label="spot")
        for spot, msg in result.errors.items():
            logger.warning("spot %s: %s", spot, msg)


if __name__ == "__main__":
    main()
