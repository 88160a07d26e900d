"""Fixed scaffolding for generated Maven / REST Assured / JUnit 5 projects.

None of this is model-written: pom.xml, BaseTest, ApiConfig and the
resource files depend only on the suite name, namespace and base URL.
"""

from typing import List

from agentic_api_testgen.models import GeneratedFile, TestPlan


def pom_xml(artifact_id: str, group_id: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0"
         xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
         xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 http://maven.apache.org/xsd/maven-4.0.0.xsd">
  <modelVersion>4.0.0</modelVersion>
  <groupId>{group_id}</groupId>
  <artifactId>{artifact_id}</artifactId>
  <version>1.0-SNAPSHOT</version>
  <properties>
    <maven.compiler.source>11</maven.compiler.source>
    <maven.compiler.target>11</maven.compiler.target>
    <project.build.sourceEncoding>UTF-8</project.build.sourceEncoding>
    <allure.version>2.25.0</allure.version>
    <aspectj.version>1.9.21</aspectj.version>
  </properties>
  <dependencies>
    <dependency><groupId>io.rest-assured</groupId><artifactId>rest-assured</artifactId><version>5.4.0</version><scope>test</scope></dependency>
    <dependency><groupId>org.junit.jupiter</groupId><artifactId>junit-jupiter</artifactId><version>5.10.2</version><scope>test</scope></dependency>
    <dependency><groupId>org.hamcrest</groupId><artifactId>hamcrest</artifactId><version>2.2</version><scope>test</scope></dependency>
    <dependency><groupId>io.qameta.allure</groupId><artifactId>allure-junit5</artifactId><version>${{allure.version}}</version><scope>test</scope></dependency>
    <dependency><groupId>io.qameta.allure</groupId><artifactId>allure-rest-assured</artifactId><version>${{allure.version}}</version><scope>test</scope></dependency>
    <dependency><groupId>com.fasterxml.jackson.core</groupId><artifactId>jackson-databind</artifactId><version>2.17.0</version><scope>test</scope></dependency>
    <dependency><groupId>org.slf4j</groupId><artifactId>slf4j-simple</artifactId><version>2.0.12</version><scope>test</scope></dependency>
  </dependencies>
  <build>
    <plugins>
      <plugin>
        <groupId>org.apache.maven.plugins</groupId>
        <artifactId>maven-surefire-plugin</artifactId>
        <version>3.2.5</version>
        <configuration>
          <argLine>-javaagent:${{settings.localRepository}}/org/aspectj/aspectjweaver/${{aspectj.version}}/aspectjweaver-${{aspectj.version}}.jar</argLine>
        </configuration>
        <dependencies>
          <dependency><groupId>org.aspectj</groupId><artifactId>aspectjweaver</artifactId><version>${{aspectj.version}}</version></dependency>
        </dependencies>
      </plugin>
      <plugin>
        <groupId>io.qameta.allure</groupId>
        <artifactId>allure-maven</artifactId>
        <version>2.12.0</version>
        <configuration><reportVersion>${{allure.version}}</reportVersion></configuration>
      </plugin>
    </plugins>
  </build>
</project>
"""


def base_test_java(namespace: str) -> str:
    return f"""package {namespace};

import io.qameta.allure.restassured.AllureRestAssured;
import io.restassured.builder.RequestSpecBuilder;
import io.restassured.filter.log.RequestLoggingFilter;
import io.restassured.filter.log.ResponseLoggingFilter;
import io.restassured.http.ContentType;
import io.restassured.specification.RequestSpecification;
import org.junit.jupiter.api.BeforeAll;

import {namespace}.config.ApiConfig;

public class BaseTest {{
    protected static RequestSpecification spec;

    @BeforeAll
    static void setup() {{
        spec = new RequestSpecBuilder()
            .setBaseUri(ApiConfig.getBaseUrl())
            .setContentType(ContentType.JSON)
            .setAccept(ContentType.JSON)
            .addFilter(new AllureRestAssured())
            .addFilter(new RequestLoggingFilter())
            .addFilter(new ResponseLoggingFilter())
            .build();
    }}
}}
"""


def api_config_java(namespace: str, base_url: str) -> str:
    # API_BASE_URL env var, then -Dapi.base.url, then the planned base URL
    return f"""package {namespace}.config;

public class ApiConfig {{
    private static final String DEFAULT_BASE_URL = "{base_url}";

    public static String getBaseUrl() {{
        String envUrl = System.getenv("API_BASE_URL");
        if (envUrl != null && !envUrl.isEmpty()) return envUrl;
        String propUrl = System.getProperty("api.base.url");
        if (propUrl != null && !propUrl.isEmpty()) return propUrl;
        return DEFAULT_BASE_URL;
    }}
}}
"""


def readme_md(suite_name: str, plan: TestPlan) -> str:
    if plan.dependencies:
        deps = "\n".join(
            f"- {d.source_operation_id} -> {d.target_operation_id}: {d.data_flow}"
            for d in plan.dependencies
        )
    else:
        deps = "None"

    lines = [
        f"# {suite_name}",
        "",
        "> Generated from a normalized API description",
        "",
        "## Coverage",
        f"- positive: {plan.count('positive')}",
        f"- negative: {plan.count('negative')}",
        f"- edge-case: {plan.count('edge-case')}",
        "",
        "## Test strategy",
        plan.reasoning,
        "",
        "## Dependencies detected",
        deps,
        "",
        "## Run tests",
        "```bash",
        "mvn test",
        "```",
        "",
        "## Allure report",
        "```bash",
        "mvn allure:serve",
        "```",
    ]
    return "\n".join(lines) + "\n"


def scaffold_files(suite_name: str, namespace: str, plan: TestPlan) -> List[GeneratedFile]:
    """Everything in the project except the model-written test classes and README."""
    package_path = namespace.replace(".", "/")
    return [
        GeneratedFile("pom.xml", pom_xml(suite_name, namespace)),
        GeneratedFile(f"src/test/java/{package_path}/BaseTest.java", base_test_java(namespace)),
        GeneratedFile(
            f"src/test/java/{package_path}/config/ApiConfig.java",
            api_config_java(namespace, plan.base_url),
        ),
        GeneratedFile("src/test/resources/application.properties", f"api.base.url={plan.base_url}\n"),
        GeneratedFile(
            "src/test/resources/allure.properties",
            "allure.results.directory=target/allure-results\n",
        ),
    ]
