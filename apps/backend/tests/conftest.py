"""
Shared fixtures for extraction tests.
"""

import json

import pytest

JOB_POSTING = {
    "@context": "https://schema.org",
    "@type": "JobPosting",
    "title": "Staff Engineer",
    "description": "&lt;p&gt;Build and run the platform that powers our products.&lt;/p&gt;",
    "hiringOrganization": {"@type": "Organization", "name": "Acme Corp"},
    "jobLocation": {"@type": "Place", "address": {"addressLocality": "San Francisco"}},
    "baseSalary": {
        "@type": "MonetaryAmount",
        "currency": "USD",
        "value": {"@type": "QuantitativeValue", "minValue": 100000, "maxValue": 200000.0},
    },
    "employmentType": "FULL_TIME",
    "jobLocationType": "TELECOMMUTE",
    "qualifications": ["Python", "PostgreSQL", "Distributed systems"],
    "datePosted": "2024-03-01",
}


@pytest.fixture
def job_posting():
    return json.loads(json.dumps(JOB_POSTING))


@pytest.fixture
def jsonld_page(job_posting):
    """Page with a WebSite block followed by the JobPosting block."""
    website = {"@context": "https://schema.org", "@type": "WebSite", "name": "Acme"}
    return (
        "<html><head>"
        '<meta property="og:site_name" content="Acme Careers">'
        '<meta name="description" content="Staff Engineer at Acme Corp">'
        f'<script type="application/ld+json">{json.dumps(website)}</script>'
        f'<script type="application/ld+json">{json.dumps(job_posting)}</script>'
        "</head><body><h1>Staff Engineer</h1></body></html>"
    )


@pytest.fixture
def html_page():
    """Page with no JSON-LD, only markup and meta tags."""
    return """
    <html>
      <head>
        <meta property="og:site_name" content="Globex Careers">
        <meta name="twitter:title" content="Data Analyst">
      </head>
      <body>
        <main>
          <h1 class="job-title">
            Data   Analyst
          </h1>
          <div class="company">Globex Corporation</div>
          <div class="location">Remote - Europe</div>
          <div class="salary">Salary: $120,000 - $150,000 per year</div>
          <div class="description">Analyse data &amp; build <b>dashboards</b> for the team.</div>
          <ul class="benefits">Health, Dental, , Pension</ul>
        </main>
      </body>
    </html>
    """
