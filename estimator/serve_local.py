#!/usr/bin/env python3
"""Local development server for the estimate form handlers.

Usage:
    cd estimator
    python serve_local.py

This will start a Flask server that handles:
- GET|POST /form_context             -> get_form_context
- GET|POST /questionnaire            -> get_questionnaire
- POST /search_clients               -> search_clients
- POST /search_sales_executives      -> search_sales_executives
- POST /create_estimate              -> create_estimate
- POST /regenerate_summary           -> regenerate_summary
- POST /prompt_template              -> prompt_template
"""

import os

from flask import Flask, request, jsonify
from flask_cors import CORS

from main import (
    create_estimate,
    get_form_context,
    get_questionnaire,
    prompt_template,
    regenerate_summary,
    search_clients,
    search_sales_executives,
)

app = Flask(__name__)
CORS(app)


@app.route('/form_context', methods=['GET', 'POST', 'OPTIONS'])
def handle_form_context():
    return get_form_context(request)

@app.route('/questionnaire', methods=['GET', 'POST', 'OPTIONS'])
def handle_questionnaire():
    return get_questionnaire(request)

@app.route('/search_clients', methods=['POST', 'OPTIONS'])
def handle_search_clients():
    return search_clients(request)

@app.route('/search_sales_executives', methods=['POST', 'OPTIONS'])
def handle_search_sales_executives():
    return search_sales_executives(request)

@app.route('/create_estimate', methods=['POST', 'OPTIONS'])
def handle_create_estimate():
    return create_estimate(request)

@app.route('/regenerate_summary', methods=['POST', 'OPTIONS'])
def handle_regenerate_summary():
    return regenerate_summary(request)

@app.route('/prompt_template', methods=['POST', 'OPTIONS'])
def handle_prompt_template():
    return prompt_template(request)


# Health check
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'service': 'scopestack-estimator'})


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    print(f"""
╔════════════════════════════════════════════════════════════════╗
║  ScopeStack Estimator - Local Development Server               ║
╠════════════════════════════════════════════════════════════════╣
║  Server running on: http://127.0.0.1:{port}
║                                                                ║
║  Endpoints:                                                    ║
║  • GET|POST /form_context                                      ║
║  • GET|POST /questionnaire                                     ║
║  • POST /search_clients, /search_sales_executives              ║
║  • POST /create_estimate                                       ║
║  • POST /regenerate_summary, /prompt_template                  ║
╚════════════════════════════════════════════════════════════════╝
""")
    app.run(host='127.0.0.1', port=port, debug=True, threaded=True)
