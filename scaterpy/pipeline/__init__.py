"""QC report pipeline entrypoints."""


def run_qc_pipeline(*args, **kwargs):
    from scaterpy.pipeline.qc_report import run_qc_pipeline as _run_qc_pipeline

    return _run_qc_pipeline(*args, **kwargs)


__all__ = ["run_qc_pipeline"]
