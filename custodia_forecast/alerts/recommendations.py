"""Advisory text derived from a forecast's diagnostics"""

from typing import List

from custodia_forecast.schemas import DataQuality, EnsembleForecast


def build_recommendations(
    forecast: EnsembleForecast,
    target_mape: float = 15.0,
    low_confidence_threshold: float = 0.6,
    max_band_ratio: float = 0.30
) -> List[str]:
    """
    Recommendations for the planning team

    Args:
        forecast: Ensemble forecast, ideally with diagnostics attached
        target_mape: MAPE above which recalibration is suggested
        low_confidence_threshold: Confidence below which inputs should be reviewed
        max_band_ratio: Uncertainty band width, relative to the forecast,
            above which the models are flagged as disagreeing

    Returns:
        List of recommendation lines (never empty)
    """
    recommendations = []
    diagnostics = forecast.diagnostics

    if diagnostics is not None:
        if diagnostics.mape is not None and diagnostics.mape > target_mape:
            recommendations.append(
                f"Backtest MAPE of {diagnostics.mape:.1f}% is above the {target_mape:.0f}% "
                f"target: trigger a recalibration"
            )

        if diagnostics.anomalies_detected:
            recommendations.append(
                "Anomalous periods found: validate the source data before relying on this forecast"
            )

        if diagnostics.data_quality is DataQuality.LOW:
            recommendations.append(
                "Historical window is short: collect more months of history"
            )

    if forecast.overall_confidence < low_confidence_threshold:
        recommendations.append(
            f"Ensemble confidence is {forecast.overall_confidence:.0%}: review the model inputs"
        )

    band = forecast.uncertainty_upper - forecast.uncertainty_lower
    if forecast.final_services > 0 and band / forecast.final_services > max_band_ratio:
        recommendations.append(
            "Component models disagree widely: treat the point forecast with caution"
        )

    if not recommendations:
        recommendations.append("Forecast is stable: no action required")

    return recommendations
