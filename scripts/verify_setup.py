"""Quick test script to verify environment setup and connections."""

import os
import sys
from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


def test_env_vars():
    """Check that required environment variables are set."""
    print("=" * 60)
    print("ENVIRONMENT VARIABLES CHECK")
    print("=" * 60)

    optional_vars = {
        'INPUT_CSV': 'CSV file with order codes (default: data/purchases.csv)',
        'GEMINI_MODEL': 'Gemini model name (default: gemini-2.5-flash)',
        'REQUESTS_PER_MINUTE': 'Gemini request budget (default: 15)',
        'CONCURRENCY': 'Codes processed at once (default: 1)',
    }

    all_good = True

    print("\nRequired variables:")
    value = os.getenv('GOOGLE_API_KEY') or os.getenv('GOOGLE_AI_API_KEY')
    if value:
        # Mask sensitive values
        masked = value[:10] + '...' if len(value) > 10 else '***'
        print(f"  ✓ GOOGLE_API_KEY: {masked} (Google Gemini API key)")
    else:
        print("  ✗ GOOGLE_API_KEY: NOT SET (Google Gemini API key)")
        all_good = False

    print("\nOptional variables:")
    for var, description in optional_vars.items():
        value = os.getenv(var)
        if value:
            print(f"  ✓ {var}: {value} ({description})")
        else:
            print(f"  ⚠ {var}: NOT SET ({description})")

    return all_good


def test_config():
    """Load and validate the pipeline configuration and input file."""
    print("\n" + "=" * 60)
    print("CONFIGURATION TEST")
    print("=" * 60)

    from pipeline.config import PipelineConfig, ConfigurationError
    from utils.csv_source import load_codes

    try:
        config = PipelineConfig.from_env()
        print(f"  ✓ Configuration valid (max retries {config.max_retries}, "
              f"{config.requests_per_minute} requests/min)")
        codes = load_codes(config.input_csv, config.code_column)
        print(f"  ✓ {config.input_csv}: {len(codes)} valid codes")
        return True
    except ConfigurationError as e:
        print(f"  ✗ {e}")
        return False


def test_gemini_api():
    """Test Gemini API connection."""
    print("\n" + "=" * 60)
    print("GEMINI API TEST")
    print("=" * 60)

    try:
        from pipeline.config import PipelineConfig
        from classifiers.gemini_extractor import GeminiExtractor

        config = PipelineConfig.from_env()
        extractor = GeminiExtractor(api_key=config.require_api_key(), model_name=config.gemini_model)
        print(f"  ✓ Gemini extractor initialized ({config.gemini_model})")

        print("  Testing a short request...")
        response = extractor.model.generate_content("Responde solo con la palabra OK")
        if response.text:
            print(f"  ✓ Response received: {response.text.strip()[:40]}")
            return True
        print("  ✗ Empty response")
        return False
    except Exception as e:
        print(f"  ✗ Error: {e}")
        return False


def test_mercadopublico():
    """Check that the Mercado Público search page is reachable."""
    print("\n" + "=" * 60)
    print("MERCADO PÚBLICO TEST")
    print("=" * 60)

    try:
        import requests
        from scrapers.mercadopublico_scraper import SEARCH_URL, DEFAULT_HEADERS

        response = requests.get(SEARCH_URL, headers=DEFAULT_HEADERS, timeout=30)
        response.raise_for_status()
        print(f"  ✓ {SEARCH_URL} responded with {response.status_code}")
        return True
    except Exception as e:
        print(f"  ✗ Error: {e}")
        return False


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("MERCADO PÚBLICO ORDER PIPELINE - SETUP VERIFICATION")
    print("=" * 60)

    results = {}

    results['env'] = test_env_vars()

    if not results['env']:
        print("\n⚠ Some required environment variables are missing!")
        print("  Please check your .env file and try again.")
        return

    results['config'] = test_config()
    results['gemini'] = test_gemini_api()
    results['mercadopublico'] = test_mercadopublico()

    # Summary
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)

    required_tests = ['env', 'config', 'gemini', 'mercadopublico']
    passed = sum(1 for test in required_tests if results.get(test))

    print(f"\nRequired tests: {passed}/{len(required_tests)} passed")

    if passed == len(required_tests):
        print("\n✓ All required components are working!")
        print("  You're ready to run the pipeline:")
        print("  python scripts/run_pipeline.py --mode sample --sample 5")
    else:
        print("\n✗ Some required components failed")
        print("  Please fix the issues above before running the pipeline")


if __name__ == '__main__':
    main()
