from perturbation_explanations.core.exceptions import (
    ConfigurationError,
    DataShapeError,
    ExplanationError,
    ModelNotSupportedError,
    NotFittedError,
    NumericError,
    UnsupportedOperationError,
    ValidationError,
    explain_exception,
)


def test_exception_hierarchy_is_consistent():
    assert issubclass(ValidationError, ExplanationError)
    assert issubclass(DataShapeError, ValidationError)
    assert issubclass(ConfigurationError, ExplanationError)
    assert issubclass(ModelNotSupportedError, ExplanationError)
    assert issubclass(NotFittedError, ExplanationError)
    assert issubclass(NumericError, ExplanationError)
    assert issubclass(UnsupportedOperationError, ExplanationError)


def test_exceptions_carry_details_dict_and_repr():
    e = ValidationError("bad input", details={"code": "VAL_INPUT", "param": "x"})
    assert isinstance(e, Exception)
    assert e.details == {"code": "VAL_INPUT", "param": "x"}
    # repr should include class name and message, but not necessarily details
    r = repr(e)
    assert "ValidationError" in r
    assert "bad input" in r


def test_explain_exception_formats_details():
    e = NumericError("prediction is not finite", details={"value": "nan"})
    assert explain_exception(e) == (
        "NumericError: prediction is not finite\n  Details: {'value': 'nan'}"
    )
    assert explain_exception(NotFittedError("no baseline")) == "NotFittedError: no baseline"
    assert explain_exception(KeyError("plain")) == "'plain'"
