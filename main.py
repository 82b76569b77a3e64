"""
Main script to run the SARIMA analysis
Execute this file to search orders, evaluate candidates and forecast consumption
"""

from sarima_model import SARIMAAnalysis
from config import AnalysisConfig


def main():
    """
    Main function to execute the SARIMA analysis pipeline
    """
    print("SARIMA Electricity Consumption Analysis")
    print("=" * 40)

    # Initialize configuration
    config = AnalysisConfig()

    # Display configuration
    print("\nCurrent Configuration:")
    for line in config.describe():
        print(f"  • {line}")
    print(f"  • Forecast months: {config.FORECAST_MONTHS}")
    print(f"  • Confidence level: {config.CONFIDENCE_LEVEL*100:.0f}%")
    print(f"  • Cached search results: {'ON' if config.USE_CACHED_RESULTS else 'OFF'}")

    analysis = SARIMAAnalysis(config)
    results = analysis.run()

    forecast = results.get("forecast")
    if forecast is not None:
        print(f"\n[SUCCESS] Analysis completed successfully!")
        print(f"  - Grid search results: {config.RESULTS_FILE}")
        print(f"  - Candidate evaluation: {config.CANDIDATES_FILE}")
        print(f"  - Forecast: {config.FORECAST_FILE}")

        print(f"\nForecast:")
        print(forecast.to_string())
    else:
        print("\n[ERROR] No forecast generated. Check your data and configuration.")

    return results


if __name__ == "__main__":
    main()
