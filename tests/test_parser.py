import numpy as np
import pandas as pd
import pytest

from utils.parser import (
    align_samples,
    describe_dataset,
    handle_missing_values,
    load_expression_matrix,
    load_sample_annotations,
    load_tissue_dataset,
    tissue_codes,
    top_variable_genes,
)
from utils.synthetic import write_simulated_dataset


@pytest.fixture
def dataset_files(tmp_path):
    expr = tmp_path / "expr.csv"
    annot = tmp_path / "annot.csv"
    e, tissue = write_simulated_dataset(str(expr), str(annot), n_genes=500, random_state=4)
    return str(expr), str(annot), e, tissue


def test_load_tissue_dataset_roundtrip(dataset_files):
    expr, annot, e, tissue = dataset_files
    loaded, loaded_tissue, info = load_tissue_dataset(expr, annot)

    assert loaded.shape == e.shape
    assert list(loaded.columns) == list(e.columns)
    assert np.allclose(loaded.values, e.values)
    assert list(loaded_tissue) == list(tissue)
    assert info["n_imputed"] == 0
    assert info["tissue_order"][0] == "kidney"


def test_annotations_are_aligned_to_columns(dataset_files, tmp_path):
    expr, annot, e, tissue = dataset_files
    shuffled = pd.read_csv(annot).sample(frac=1.0, random_state=0)
    # an extra sample without expression data is ignored
    extra = pd.DataFrame({"sample": ["GSM9999"], "tissue": ["spleen"]})
    path = tmp_path / "shuffled.csv"
    pd.concat([shuffled, extra]).to_csv(path, index=False)

    _, loaded_tissue, _ = load_tissue_dataset(expr, str(path))
    assert list(loaded_tissue) == list(tissue)


def test_unannotated_sample_is_an_error(dataset_files, tmp_path):
    expr, annot, _, _ = dataset_files
    path = tmp_path / "partial.csv"
    pd.read_csv(annot).iloc[1:].to_csv(path, index=False)

    with pytest.raises(ValueError, match="no tissue annotation"):
        load_tissue_dataset(expr, str(path))


def test_custom_annotation_columns(tmp_path):
    path = tmp_path / "annot.tsv"
    path.write_text("filename\tTissue\nA\tliver\nB\tcolon\n")
    annotations = load_sample_annotations(str(path), sample_column="filename", tissue_column="Tissue")
    assert annotations.loc["B", "tissue"] == "colon"

    with pytest.raises(ValueError, match="missing"):
        load_sample_annotations(str(path))


def test_missing_files():
    with pytest.raises(FileNotFoundError):
        load_expression_matrix("does/not/exist.csv")
    with pytest.raises(FileNotFoundError):
        load_sample_annotations("does/not/exist.csv")


def test_tsv_with_missing_markers(tmp_path):
    path = tmp_path / "expr.tsv"
    path.write_text(
        "gene\tS1\tS2\tS3\n"
        "g1\t1.0\t?\t3.0\n"
        "g2\tNA\t\t\n"
        "g3\t5.0\t6.0\t7.0\n"
    )
    e = load_expression_matrix(str(path))
    assert list(e.columns) == ["S1", "S2", "S3"]
    assert np.isnan(e.loc["g1", "S2"])

    cleaned, counts = handle_missing_values(e)
    assert list(cleaned.index) == ["g1", "g3"]
    assert counts == {"n_dropped_genes": 1, "n_imputed": 1}
    # median of the gene's observed values
    assert cleaned.loc["g1", "S2"] == pytest.approx(2.0)
    assert not cleaned.isnull().any().any()


def test_no_numeric_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("gene,S1\ng1,abc\ng2,def\n")
    with pytest.raises(ValueError, match="No numeric"):
        load_expression_matrix(str(path))


def test_align_samples_returns_column_order():
    e = pd.DataFrame(np.zeros((2, 3)), columns=["c", "a", "b"])
    annotations = pd.DataFrame({"tissue": ["x", "y", "z"]}, index=["a", "b", "c"])
    assert list(align_samples(e, annotations)) == ["z", "x", "y"]


def test_top_variable_genes():
    e = pd.DataFrame(
        [[1, 1, 1], [0, 5, 10], [1, 2, 3], [0, 10, 20]],
        index=["flat", "mid", "low", "high"],
        dtype=float,
    )
    top = top_variable_genes(e, n=2)
    assert list(top.index) == ["high", "mid"]
    assert list(top_variable_genes(e, n=10).index) == ["high", "mid", "low", "flat"]
    with pytest.raises(ValueError):
        top_variable_genes(e, n=0)


def test_tissue_codes_follow_first_appearance():
    codes, order = tissue_codes(np.array(["liver", "colon", "liver", "kidney"]))
    assert order == ["liver", "colon", "kidney"]
    assert list(codes) == [0, 1, 0, 2]


def test_describe_dataset(tissue):
    table = describe_dataset(tissue)
    assert list(table["tissue"]) == ["kidney", "hippocampus", "cerebellum", "liver"]
    assert list(table["n_samples"]) == [8, 6, 7, 5]


def test_duplicated_annotation_is_an_error(tmp_path):
    expr = tmp_path / "expr.csv"
    expr.write_text("gene,A,B,C\ng1,1.0,2.0,3.0\ng2,4.0,5.0,6.0\n")
    annot = tmp_path / "annot.csv"
    annot.write_text("sample,tissue\nA,liver\nA,colon\nB,liver\nC,colon\n")

    with pytest.raises(ValueError, match="more than once: A"):
        load_tissue_dataset(str(expr), str(annot))


def test_gzipped_tsv(tmp_path):
    path = tmp_path / "expr.tsv.gz"
    expected = pd.DataFrame(
        {"S1": [1.0, 2.0], "S2": [3.0, 4.0]},
        index=pd.Index(["g1", "g2"], name="gene"),
    )
    expected.to_csv(path, sep="\t")

    e = load_expression_matrix(str(path))
    assert list(e.columns) == ["S1", "S2"]
    assert e.loc["g2", "S2"] == 4.0
