"""
Built-in stage variants.

Importing this package registers every variant under its stage type.
"""

from stageml.stages.encoders import DummyEncoder, DummyEncoderParameters
from stageml.stages.estimators import (
    KMeans,
    KMeansParameters,
    LinearRegression,
    LinearRegressionParameters,
    MultinomialNaiveBayes,
    MultinomialNaiveBayesParameters,
    NLMS,
    NLMSParameters,
    SklearnEstimator,
    SoftmaxRegression,
    SoftmaxRegressionParameters,
)
from stageml.stages.scalers import MinMaxScaler, MinMaxScalerParameters
from stageml.stages.selectors import PCA, ChiSquareSelect, ChiSquareSelectParameters, PCAParameters

__all__ = [
    "MinMaxScaler",
    "MinMaxScalerParameters",
    "DummyEncoder",
    "DummyEncoderParameters",
    "PCA",
    "PCAParameters",
    "ChiSquareSelect",
    "ChiSquareSelectParameters",
    "SklearnEstimator",
    "SoftmaxRegression",
    "SoftmaxRegressionParameters",
    "MultinomialNaiveBayes",
    "MultinomialNaiveBayesParameters",
    "LinearRegression",
    "LinearRegressionParameters",
    "NLMS",
    "NLMSParameters",
    "KMeans",
    "KMeansParameters",
]
